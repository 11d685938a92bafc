# =============================================================================
# core/exceptions.py - Export error hierarchy
# =============================================================================

from typing import Optional


class EntraExportError(Exception):
    """Base exception for export errors."""
    pass


class AuthenticationError(EntraExportError):
    """Raised when no access token could be acquired."""
    pass


class TenantDiscoveryError(EntraExportError):
    """Raised when the tenants available to the signed-in account cannot be listed."""
    pass


class GraphApiError(EntraExportError):
    """Raised when Microsoft Graph answers with a non-success status."""

    def __init__(self, status_code: int, message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")
