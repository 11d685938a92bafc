# =============================================================================
# core/auth.py - Device code authentication against Microsoft Entra ID
# =============================================================================

import logging
import time
from typing import Callable, List, NamedTuple, Optional

import msal

from core.exceptions import AuthenticationError

AUTHORITY_HOST = "https://login.microsoftonline.com"


class AccessToken(NamedTuple):
    token: str
    expires_on: float


def print_device_code_message(message: str) -> None:
    """Show the device code instructions to the operator"""
    print("\n" + "=" * 70)
    print("DEVICE CODE AUTHENTICATION")
    print("=" * 70)
    print(f"\n{message}\n")
    print("=" * 70 + "\n", flush=True)


class DeviceCodeAuthenticator:
    """Acquires delegated Graph tokens with msal, silently when a cached account allows it"""

    def __init__(self, client_id: str, tenant_id: str, scopes: List[str],
                 token_cache: Optional[msal.SerializableTokenCache] = None,
                 prompt_callback: Callable[[str], None] = print_device_code_message):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.scopes = list(scopes)
        self.token_cache = token_cache if token_cache is not None else msal.SerializableTokenCache()
        self.prompt_callback = prompt_callback
        self.logger = logging.getLogger(__name__)
        self._app: Optional[msal.PublicClientApplication] = None

    @property
    def authority(self) -> str:
        return f"{AUTHORITY_HOST}/{self.tenant_id}"

    @property
    def app(self) -> msal.PublicClientApplication:
        if self._app is None:
            self._app = msal.PublicClientApplication(
                self.client_id,
                authority=self.authority,
                token_cache=self.token_cache
            )
        return self._app

    def for_tenant(self, tenant_id: str) -> "DeviceCodeAuthenticator":
        """Authenticator for another tenant, reusing the signed-in account's token cache"""
        return DeviceCodeAuthenticator(
            self.client_id, tenant_id, self.scopes,
            token_cache=self.token_cache,
            prompt_callback=self.prompt_callback
        )

    def get_token(self) -> AccessToken:
        """Acquire an access token, falling back to the device code flow"""
        result = self._acquire_silent()

        if not result:
            self.logger.info(f"Starting device code sign-in for tenant {self.tenant_id}")
            flow = self.app.initiate_device_flow(scopes=self.scopes)
            if "user_code" not in flow:
                raise AuthenticationError(
                    f"Could not start device code flow: {flow.get('error_description', flow.get('error'))}"
                )
            self.prompt_callback(flow["message"])
            result = self.app.acquire_token_by_device_flow(flow)

        if not result or "access_token" not in result:
            description = (result or {}).get("error_description") or (result or {}).get("error")
            raise AuthenticationError(f"Authentication failed: {description or 'no token returned'}")

        expires_in = int(result.get("expires_in", 3600))
        self.logger.info(f"Successfully authenticated to Microsoft Graph (tenant: {self.tenant_id})")
        return AccessToken(token=result["access_token"], expires_on=time.time() + expires_in)

    def _acquire_silent(self) -> Optional[dict]:
        accounts = self.app.get_accounts()
        if not accounts:
            return None

        result = self.app.acquire_token_silent(self.scopes, account=accounts[0])
        if result and "access_token" in result:
            self.logger.debug(f"Reused cached account {accounts[0].get('username')}")
            return result
        return None
