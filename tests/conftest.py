"""
Shared fixtures for the export tests.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from core.models import AssignedLicense, GraphUser, LicenseSku, Manager, ServicePlan
from services.license_service import LicenseService
from utils.retry import RetryOptions

E3_SKU_ID = "6fd2c87f-b296-42f0-b197-1e91e994b900"
P1_SKU_ID = "078d2b04-f1bd-4111-bbd4-b4b1b354cef4"


def make_user(user_id: str, upn: Optional[str] = None, **overrides: Any) -> GraphUser:
    """Build a GraphUser with sensible defaults."""
    upn = upn if upn is not None else f"{user_id}@contoso.com"
    values: Dict[str, Any] = {
        'id': user_id,
        'given_name': 'Test',
        'surname': user_id.title(),
        'display_name': f"Test {user_id.title()}",
        'user_principal_name': upn,
        'mail': upn,
        'account_enabled': True,
    }
    values.update(overrides)
    return GraphUser(**values)


def make_graph_user_payload(user_id: str, **overrides: Any) -> Dict[str, Any]:
    """Raw /users item as Graph returns it."""
    payload = {
        'id': user_id,
        'givenName': 'John',
        'surname': 'Doe',
        'displayName': 'John Doe',
        'userPrincipalName': f"{user_id}@contoso.com",
        'mail': f"{user_id}@contoso.com",
        'jobTitle': 'Developer',
        'department': 'IT',
        'businessPhones': ['+1 555-0101'],
        'accountEnabled': True,
        'onPremisesSyncEnabled': False,
        'createdDateTime': '2024-01-01T00:00:00Z',
        'assignedLicenses': [],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def retry_options() -> RetryOptions:
    return RetryOptions(max_retries=3, retry_delay_ms=1)


@pytest.fixture
def license_catalog() -> Dict[str, LicenseSku]:
    return {
        E3_SKU_ID: LicenseSku(
            sku_id=E3_SKU_ID,
            sku_part_number='ENTERPRISEPACK',
            display_name='Office 365 E3',
            service_plans=[
                ServicePlan('plan-exchange', 'EXCHANGE_S_ENTERPRISE', 'Success'),
                ServicePlan('plan-sharepoint', 'SHAREPOINTENTERPRISE', 'Success'),
                ServicePlan('plan-teams', 'TEAMS1', 'Success'),
                ServicePlan('plan-yammer', 'YAMMER_ENTERPRISE', 'PendingActivation'),
            ]
        ),
        P1_SKU_ID: LicenseSku(
            sku_id=P1_SKU_ID,
            sku_part_number='AAD_PREMIUM',
            display_name='Microsoft Entra ID P1',
            service_plans=[
                ServicePlan('plan-aad', 'AAD_PREMIUM', 'Success'),
                ServicePlan('plan-exchange', 'EXCHANGE_S_ENTERPRISE', 'Success'),
            ]
        ),
    }


@pytest.fixture
def license_service(license_catalog, retry_options) -> LicenseService:
    service = LicenseService(MagicMock(), retry_options, MagicMock())
    service.license_sku_map = dict(license_catalog)
    return service


@pytest.fixture
def licensed_user() -> GraphUser:
    return make_user(
        'alice',
        given_name='Alice',
        surname='Smith',
        display_name='Alice Smith',
        job_title='Engineer',
        business_phones=['+1 555-0101', '+1 555-0102'],
        assigned_licenses=[AssignedLicense(E3_SKU_ID, ['plan-teams'])],
        last_successful_sign_in='2024-09-30T10:00:00Z',
        manager=Manager('Jane Manager', 'jane@contoso.com'),
    )


def memberships() -> List[Dict[str, Any]]:
    return [
        {'@odata.type': '#microsoft.graph.group', 'displayName': 'Zeta Security', 'securityEnabled': True},
        {'@odata.type': '#microsoft.graph.group', 'displayName': 'All Staff', 'securityEnabled': False},
        {'@odata.type': '#microsoft.graph.administrativeUnit', 'displayName': 'EU Unit', 'securityEnabled': True},
        {'@odata.type': '#microsoft.graph.group', 'displayName': 'Alpha Security', 'securityEnabled': True},
    ]
