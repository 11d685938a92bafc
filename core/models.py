# =============================================================================
# core/models.py - Graph entities and export records
# =============================================================================

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class MfaStatus(Enum):
    """Overall MFA state of a user"""
    ENABLED = "Enabled"
    DISABLED = "Disabled"
    UNKNOWN = "Unknown"


@dataclass
class AssignedLicense:
    """License assignment on a user"""
    sku_id: str
    disabled_plans: List[str] = field(default_factory=list)

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "AssignedLicense":
        return cls(
            sku_id=payload.get('skuId', ''),
            disabled_plans=list(payload.get('disabledPlans') or [])
        )


@dataclass
class Manager:
    """Manager back-reference expanded inline on a user"""
    display_name: Optional[str] = None
    user_principal_name: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "Manager":
        return cls(
            display_name=payload.get('displayName'),
            user_principal_name=payload.get('userPrincipalName')
        )


@dataclass
class GraphUser:
    """User entity as returned by the /users listing"""
    id: str
    given_name: Optional[str] = None
    surname: Optional[str] = None
    display_name: Optional[str] = None
    user_principal_name: Optional[str] = None
    mail: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    company_name: Optional[str] = None
    office_location: Optional[str] = None
    employee_id: Optional[str] = None
    mobile_phone: Optional[str] = None
    business_phones: List[str] = field(default_factory=list)
    street_address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    user_type: Optional[str] = None
    on_premises_sync_enabled: bool = False
    account_enabled: bool = False
    created_date_time: Optional[str] = None
    assigned_licenses: List[AssignedLicense] = field(default_factory=list)
    last_successful_sign_in: Optional[str] = None
    manager: Optional[Manager] = None

    # Graph property name -> attribute name, for the plain string properties
    STRING_PROPERTIES = {
        'givenName': 'given_name',
        'surname': 'surname',
        'displayName': 'display_name',
        'userPrincipalName': 'user_principal_name',
        'mail': 'mail',
        'jobTitle': 'job_title',
        'department': 'department',
        'companyName': 'company_name',
        'officeLocation': 'office_location',
        'employeeId': 'employee_id',
        'mobilePhone': 'mobile_phone',
        'streetAddress': 'street_address',
        'city': 'city',
        'postalCode': 'postal_code',
        'state': 'state',
        'country': 'country',
        'userType': 'user_type',
        'createdDateTime': 'created_date_time',
    }

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "GraphUser":
        """Build a user from a raw /users item"""
        if not payload.get('id'):
            raise ValueError("User payload is missing 'id'")

        kwargs = {attr: payload.get(prop) for prop, attr in cls.STRING_PROPERTIES.items()}

        sign_in_activity = payload.get('signInActivity') or {}
        manager = payload.get('manager')

        return cls(
            id=payload['id'],
            business_phones=list(payload.get('businessPhones') or []),
            on_premises_sync_enabled=bool(payload.get('onPremisesSyncEnabled')),
            account_enabled=bool(payload.get('accountEnabled')),
            assigned_licenses=[
                AssignedLicense.from_graph(item) for item in payload.get('assignedLicenses') or []
            ],
            last_successful_sign_in=sign_in_activity.get('lastSuccessfulSignInDateTime'),
            manager=Manager.from_graph(manager) if manager else None,
            **kwargs
        )


@dataclass
class ServicePlan:
    """Service plan bundled in a subscribed SKU"""
    service_plan_id: str
    service_plan_name: str
    provisioning_status: str = ""

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "ServicePlan":
        return cls(
            service_plan_id=payload.get('servicePlanId', ''),
            service_plan_name=payload.get('servicePlanName', ''),
            provisioning_status=payload.get('provisioningStatus', '')
        )


@dataclass
class LicenseSku:
    """Subscribed SKU with its resolved display name"""
    sku_id: str
    sku_part_number: str
    display_name: str
    service_plans: List[ServicePlan] = field(default_factory=list)


@dataclass
class MfaInfo:
    """MFA configuration of a single user"""
    default_method: str = "Not set"
    mfa_status: MfaStatus = MfaStatus.DISABLED
    email_auth: bool = False
    fido2_auth: bool = False
    ms_authenticator_app: bool = False
    ms_authenticator_lite: bool = False
    phone_auth: bool = False
    software_oath: bool = False
    temporary_access_pass: bool = False
    windows_hello: bool = False

    @classmethod
    def error_result(cls) -> "MfaInfo":
        """Sentinel used when the MFA lookup itself failed"""
        return cls(default_method="Error", mfa_status=MfaStatus.UNKNOWN)


@dataclass
class SecurityGroupInfo:
    """Security groups a user is a direct member of"""
    groups: List[str] = field(default_factory=list)
    count: int = 0


@dataclass
class LicenseDetails:
    """Licenses and enabled service plans of a user"""
    license_skus: List[str] = field(default_factory=list)
    license_count: int = 0
    service_plans: List[str] = field(default_factory=list)


@dataclass
class TenantInfo:
    """Organization the signed-in account can export from"""
    id: str
    display_name: str
    default_domain: str
    tenant_type: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "TenantInfo":
        domains = payload.get('verifiedDomains') or []
        default_domain = next(
            (domain.get('name') for domain in domains if domain.get('isDefault')), None
        )
        if not default_domain and domains:
            default_domain = domains[0].get('name')

        return cls(
            id=payload.get('id', ''),
            display_name=payload.get('displayName') or 'Unnamed Organization',
            default_domain=default_domain or 'unknown',
            tenant_type=payload.get('tenantType')
        )


@dataclass
class BatchRequestItem:
    id: str
    url: str
    method: str = "GET"


@dataclass
class BatchRequest:
    requests: List[BatchRequestItem] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            'requests': [
                {'id': item.id, 'method': item.method, 'url': item.url}
                for item in self.requests
            ]
        }


@dataclass
class BatchResponseItem:
    id: str
    status: int
    body: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BatchResponse:
    responses: List[BatchResponseItem] = field(default_factory=list)

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "BatchResponse":
        responses = []
        for item in payload.get('responses') or []:
            body = item.get('body')
            responses.append(BatchResponseItem(
                id=str(item.get('id', '')),
                status=int(item.get('status', 0)),
                body=body if isinstance(body, dict) else {}
            ))
        return cls(responses=responses)

    def get(self, request_id: str) -> Optional[BatchResponseItem]:
        """Find the response for a request id; Graph does not keep request order"""
        for item in self.responses:
            if item.id == request_id:
                return item
        return None


# CSV header -> ProcessedUserRecord attribute, in output column order
OUTPUT_COLUMNS: List[Tuple[str, str]] = [
    ('ID', 'id'),
    ('First name', 'first_name'),
    ('Last name', 'last_name'),
    ('Display name', 'display_name'),
    ('User principal name', 'user_principal_name'),
    ('Domain name', 'domain_name'),
    ('Email address', 'email_address'),
    ('Job title', 'job_title'),
    ('Manager display name', 'manager_display_name'),
    ('Manager user principal name', 'manager_user_principal_name'),
    ('Department', 'department'),
    ('Company', 'company'),
    ('Office', 'office'),
    ('Employee ID', 'employee_id'),
    ('Mobile', 'mobile'),
    ('Phone', 'phone'),
    ('Street', 'street'),
    ('City', 'city'),
    ('Postal code', 'postal_code'),
    ('State', 'state'),
    ('Country', 'country'),
    ('User type', 'user_type'),
    ('On-Premises sync', 'on_premises_sync'),
    ('Account status', 'account_status'),
    ('Account Created on', 'account_created_on'),
    ('Last successful sign in', 'last_successful_sign_in'),
    ('Licensed', 'licensed'),
    ('DefaultMFAMethod', 'default_mfa_method'),
    ('MFA status', 'mfa_status'),
    ('Email authentication', 'email_authentication'),
    ('FIDO2 authentication', 'fido2_authentication'),
    ('Microsoft Authenticator App', 'microsoft_authenticator_app'),
    ('Microsoft Authenticator Lite', 'microsoft_authenticator_lite'),
    ('Phone authentication', 'phone_authentication'),
    ('Software Oath', 'software_oath'),
    ('Temporary Access Pass', 'temporary_access_pass'),
    ('Windows Hello for Business', 'windows_hello_for_business'),
    ('Security Groups', 'security_groups'),
    ('Security Group Count', 'security_group_count'),
    ('License SKUs', 'license_skus'),
    ('License Count', 'license_count'),
    ('Enabled Service Plans', 'enabled_service_plans'),
]


@dataclass
class ProcessedUserRecord:
    """One exported row: profile fields plus MFA, group and license enrichment"""
    id: str
    first_name: Optional[str]
    last_name: Optional[str]
    display_name: Optional[str]
    user_principal_name: Optional[str]
    domain_name: Optional[str]
    email_address: Optional[str]
    job_title: Optional[str]
    manager_display_name: Optional[str]
    manager_user_principal_name: Optional[str]
    department: Optional[str]
    company: Optional[str]
    office: Optional[str]
    employee_id: Optional[str]
    mobile: Optional[str]
    phone: Optional[str]
    street: Optional[str]
    city: Optional[str]
    postal_code: Optional[str]
    state: Optional[str]
    country: Optional[str]
    user_type: Optional[str]
    on_premises_sync: str
    account_status: str
    account_created_on: Optional[str]
    last_successful_sign_in: str
    licensed: str
    default_mfa_method: str
    mfa_status: str
    email_authentication: bool
    fido2_authentication: bool
    microsoft_authenticator_app: bool
    microsoft_authenticator_lite: bool
    phone_authentication: bool
    software_oath: bool
    temporary_access_pass: bool
    windows_hello_for_business: bool
    security_groups: str
    security_group_count: int
    license_skus: str
    license_count: int
    enabled_service_plans: str

    def to_row(self) -> Dict[str, Any]:
        """Convert to a CSV row keyed by output column header; flags are written as true/false"""
        row = {}
        for header, attr in OUTPUT_COLUMNS:
            value = getattr(self, attr)
            row[header] = str(value).lower() if isinstance(value, bool) else value
        return row


def output_fieldnames() -> List[str]:
    return [header for header, _ in OUTPUT_COLUMNS]


@dataclass
class ProcessingStats:
    """Counters shared by every worker of one export run"""
    total_users: int = 0
    processed: int = 0
    errors: int = 0
    start_time: Optional[float] = None

    def begin(self, total_users: int) -> None:
        self.total_users = total_users
        self.processed = 0
        self.errors = 0
        self.start_time = time.monotonic()

    def record_success(self) -> None:
        self.processed += 1

    def record_error(self) -> None:
        self.errors += 1

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.monotonic() - self.start_time

    @property
    def rate(self) -> float:
        """Processed users per second"""
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.processed / elapsed

    @property
    def percent_complete(self) -> float:
        if self.total_users == 0:
            return 0.0
        return (self.processed / self.total_users) * 100

