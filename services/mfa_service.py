# =============================================================================
# services/mfa_service.py - Authentication method lookup
# =============================================================================

import logging
from typing import Any, Dict, List

from core.models import MfaInfo, MfaStatus
from services.batch_service import BatchService

METHOD_TYPE_PREFIX = "#microsoft.graph."

# Graph authentication method type -> MfaInfo flag
METHOD_FLAGS = {
    "emailAuthenticationMethod": "email_auth",
    "fido2AuthenticationMethod": "fido2_auth",
    "phoneAuthenticationMethod": "phone_auth",
    "softwareOathAuthenticationMethod": "software_oath",
    "temporaryAccessPassAuthenticationMethod": "temporary_access_pass",
    "windowsHelloForBusinessAuthenticationMethod": "windows_hello",
}

AUTHENTICATOR_METHOD = "microsoftAuthenticatorAuthenticationMethod"

# deviceTag of a full Authenticator app registration; anything else is Authenticator Lite
AUTHENTICATOR_APP_DEVICE_TAG = "SoftwareTokenActivated"


class MfaService:
    """Retrieves a user's registered MFA methods and default preference"""

    def __init__(self, batch_service: BatchService):
        self.batch_service = batch_service
        self.logger = logging.getLogger(self.__class__.__name__)

    async def get_user_mfa_info(self, user_id: str) -> MfaInfo:
        """Get MFA methods and preference in a single batch; never raises"""
        try:
            batch_request = self.batch_service.create_batch_request([
                f"/users/{user_id}/authentication/methods",
                f"/users/{user_id}/authentication/signInPreferences",
            ])

            response = await self.batch_service.execute_batch(batch_request)

            methods_response = response.get("1")
            preference_response = response.get("2")

            methods = []
            if methods_response and methods_response.status == 200:
                methods = methods_response.body.get('value') or []

            preference = {}
            if preference_response and preference_response.status == 200:
                preference = preference_response.body

            return self.build_mfa_info(methods, preference)

        except Exception as e:
            self.logger.warning(f"Failed to get MFA info for user {user_id}: {e}")
            return MfaInfo.error_result()

    def build_mfa_info(self, methods: List[Dict[str, Any]], preference: Dict[str, Any]) -> MfaInfo:
        """Derive flags and status from the methods list and sign-in preference"""
        info = MfaInfo(
            default_method=preference.get('userPreferredMethodForSecondaryAuthentication') or "Not set"
        )

        for method in methods:
            odata_type = method.get('@odata.type') or ""
            if not odata_type.startswith(METHOD_TYPE_PREFIX):
                continue
            method_type = odata_type[len(METHOD_TYPE_PREFIX):]

            if method_type == AUTHENTICATOR_METHOD:
                if method.get('deviceTag') == AUTHENTICATOR_APP_DEVICE_TAG:
                    info.ms_authenticator_app = True
                else:
                    info.ms_authenticator_lite = True
            elif method_type in METHOD_FLAGS:
                setattr(info, METHOD_FLAGS[method_type], True)
            else:
                # password and other non-MFA methods
                continue

            info.mfa_status = MfaStatus.ENABLED

        return info
