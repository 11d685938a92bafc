# =============================================================================
# services/tenant_service.py - Tenant discovery
# =============================================================================

import logging
from typing import List, Optional

from core.exceptions import TenantDiscoveryError
from core.graph_client import GraphClient
from core.models import TenantInfo

ORGANIZATION_SELECT = 'id,displayName,verifiedDomains,tenantType'


class TenantService:
    """Lists the organizations visible to the signed-in account"""

    def __init__(self, client: GraphClient):
        self.client = client
        self.logger = logging.getLogger(self.__class__.__name__)

    async def get_available_tenants(self) -> List[TenantInfo]:
        self.logger.info("Fetching available tenants...")
        try:
            response = await self.client.get('/organization', params={'$select': ORGANIZATION_SELECT})
        except Exception as e:
            self.logger.error(f"Failed to fetch tenants: {e}")
            raise TenantDiscoveryError(
                "Unable to fetch available tenants. Make sure you have the necessary permissions."
            ) from e

        tenants = [TenantInfo.from_graph(org) for org in response.get('value') or []]
        self.logger.info(f"Found {len(tenants)} tenant(s)")
        return tenants

    async def get_tenant_by_id(self, tenant_id: str) -> Optional[TenantInfo]:
        try:
            response = await self.client.get(
                f'/organization/{tenant_id}', params={'$select': ORGANIZATION_SELECT}
            )
        except Exception as e:
            self.logger.error(f"Failed to fetch tenant {tenant_id}: {e}")
            return None

        if not response:
            return None
        return TenantInfo.from_graph(response)
