# =============================================================================
# services/license_service.py - License catalog and per-user license details
# =============================================================================

import logging
from typing import Dict, List, Optional

from core.graph_client import GraphClient
from core.models import AssignedLicense, LicenseDetails, LicenseSku, ServicePlan
from services.sku_mapping import SkuMappingService
from utils.retry import RetryOptions, retry_with_backoff

# Service plans that grant Entra ID Premium (and with it signInActivity)
PREMIUM_SERVICE_PLANS = {"AAD_PREMIUM", "AAD_PREMIUM_P2"}

PROVISIONING_SUCCESS = "Success"


class LicenseService:
    """Caches the tenant's subscribed SKUs and resolves user license assignments against them"""

    def __init__(self, client: GraphClient, retry_options: RetryOptions,
                 sku_mapping_service: SkuMappingService):
        self.client = client
        self.retry_options = retry_options
        self.sku_mapping_service = sku_mapping_service
        self.license_sku_map: Dict[str, LicenseSku] = {}
        self._built = False
        self.logger = logging.getLogger(self.__class__.__name__)

    async def build_license_sku_map(self) -> None:
        """Fetch subscribed SKUs once; a failing /subscribedSkus call propagates"""
        if self._built:
            return

        await self.sku_mapping_service.build_sku_friendly_name_map()

        self.logger.info("Building license SKU mapping...")
        response = await retry_with_backoff(
            lambda: self.client.get("/subscribedSkus"),
            self.retry_options
        )

        for sku in response.get('value') or []:
            sku_id = sku.get('skuId')
            if not sku_id:
                continue
            part_number = sku.get('skuPartNumber') or ''
            self.license_sku_map[sku_id] = LicenseSku(
                sku_id=sku_id,
                sku_part_number=part_number,
                display_name=self._resolve_display_name(sku_id, part_number),
                service_plans=[ServicePlan.from_graph(plan) for plan in sku.get('servicePlans') or []]
            )

        self._built = True
        self.logger.info(f"Cached {len(self.license_sku_map)} license SKUs")

    def has_premium_entitlement(self) -> bool:
        """True if any subscribed SKU carries an Entra ID Premium service plan"""
        has_premium = any(
            plan.service_plan_name in PREMIUM_SERVICE_PLANS
            for sku in self.license_sku_map.values()
            for plan in sku.service_plans
        )

        if has_premium:
            self.logger.info("Microsoft Entra ID Premium subscription available")
        else:
            self.logger.info("Microsoft Entra ID Premium subscription not available")
        return has_premium

    def get_user_license_details(self, assigned_licenses: Optional[List[AssignedLicense]]) -> LicenseDetails:
        """Resolve assignments to friendly names and enabled, provisioned service plans"""
        if not assigned_licenses:
            return LicenseDetails()

        license_names = set()
        service_plans = set()

        for assignment in assigned_licenses:
            sku = self.license_sku_map.get(assignment.sku_id)
            if not sku:
                license_names.add(assignment.sku_id)
                continue

            license_names.add(sku.display_name)
            disabled_plans = set(assignment.disabled_plans)
            for plan in sku.service_plans:
                if plan.service_plan_id not in disabled_plans and plan.provisioning_status == PROVISIONING_SUCCESS:
                    service_plans.add(plan.service_plan_name)

        return LicenseDetails(
            license_skus=sorted(license_names),
            license_count=len(assigned_licenses),
            service_plans=sorted(service_plans)
        )

    def _resolve_display_name(self, sku_id: str, part_number: str) -> str:
        return (
            self.sku_mapping_service.get_friendly_name_by_string_id(part_number)
            or self.sku_mapping_service.get_friendly_name_by_guid(sku_id)
            or part_number
            or sku_id
        )
