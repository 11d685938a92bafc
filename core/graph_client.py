# =============================================================================
# core/graph_client.py - Async Microsoft Graph client
# =============================================================================

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from core.auth import AccessToken, DeviceCodeAuthenticator
from core.exceptions import GraphApiError

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

# Refresh the bearer token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 300


class GraphClient:
    """Microsoft Graph REST client sharing one aiohttp session"""

    def __init__(self, authenticator: DeviceCodeAuthenticator, base_url: str = GRAPH_BASE_URL):
        self.authenticator = authenticator
        self.base_url = base_url.rstrip('/')
        self.session: Optional[aiohttp.ClientSession] = None
        self._token: Optional[AccessToken] = None
        self._token_lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.disconnect()

    async def connect(self) -> None:
        """Acquire a token and open the HTTP session"""
        await self._get_access_token()
        if self.session is None:
            self.session = aiohttp.ClientSession()
        self.logger.info(f"Connected to Microsoft Graph (tenant: {self.authenticator.tenant_id})")

    async def disconnect(self) -> None:
        """Close the HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("Closed Microsoft Graph session")

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """GET a Graph resource; path may be relative or an absolute nextLink"""
        return await self._request("GET", path, params=params)

    async def post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON body to a Graph resource"""
        return await self._request("POST", path, json=payload)

    def build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith('/'):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        if not self.session:
            raise ConnectionError("Not connected to Microsoft Graph")

        token = await self._get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        url = self.build_url(path)

        async with self.session.request(method, url, headers=headers, **kwargs) as response:
            if 200 <= response.status < 300:
                if response.status == 204:
                    return {}
                return await response.json(content_type=None) or {}

            code, message = await self._read_error(response)
            self.logger.debug(f"{method} {url} failed with HTTP {response.status}: {message}")
            raise GraphApiError(response.status, message, code)

    @staticmethod
    async def _read_error(response: aiohttp.ClientResponse):
        """Extract (code, message) from the Graph error envelope"""
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = None

        if isinstance(body, dict) and isinstance(body.get('error'), dict):
            error = body['error']
            return error.get('code'), error.get('message') or response.reason or ""

        return None, response.reason or ""

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            if self._token is None or self._token.expires_on - TOKEN_REFRESH_MARGIN <= time.time():
                # msal is blocking and may prompt for a device code
                self._token = await asyncio.to_thread(self.authenticator.get_token)
            return self._token.token
