# =============================================================================
# utils/config.py - Configuration management
# =============================================================================

import os
from typing import Optional, List
from dotenv import load_dotenv

from utils.retry import RetryOptions

# Microsoft Graph Command Line Tools (public client)
DEFAULT_CLIENT_ID = "14d82eec-204b-4c2f-b7e8-296a70dab67e"

DEFAULT_SKU_MAPPING_URL = (
    "https://download.microsoft.com/download/e/3/e/e3e9faf2-f28b-490a-9ada-c6089a1fc5b0/"
    "Product%20names%20and%20service%20plan%20identifiers%20for%20licensing.csv"
)

GRAPH_SCOPES = [
    "User.Read.All",
    "UserAuthenticationMethod.Read.All",
    "AuditLog.Read.All",
    "Organization.Read.All",
    "Group.Read.All",
    "Directory.Read.All",
]

# Graph $batch accepts at most 20 requests
MAX_BATCH_SIZE = 20

# One MFA lookup batches two requests per user
MIN_BATCH_SIZE = 2

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


class Config:
    """Configuration management"""

    def __init__(self):
        load_dotenv()

    @property
    def tenant_id(self) -> str:
        return os.getenv("ENTRA_TENANT_ID", "common")

    @property
    def client_id(self) -> str:
        return os.getenv("ENTRA_CLIENT_ID", DEFAULT_CLIENT_ID)

    @property
    def scopes(self) -> List[str]:
        return list(GRAPH_SCOPES)

    @property
    def output_dir(self) -> str:
        return os.getenv("OUTPUT_DIR", "./output")

    @property
    def max_concurrency(self) -> int:
        return self._get_int("MAX_CONCURRENCY", 20)

    @property
    def batch_size(self) -> int:
        return self._get_int("BATCH_SIZE", MAX_BATCH_SIZE)

    @property
    def max_retries(self) -> int:
        return self._get_int("MAX_RETRIES", 3)

    @property
    def retry_delay_ms(self) -> int:
        return self._get_int("RETRY_DELAY_MS", 2000)

    @property
    def sku_mapping_url(self) -> str:
        return os.getenv("SKU_MAPPING_URL", DEFAULT_SKU_MAPPING_URL)

    @property
    def sku_mapping_file(self) -> Optional[str]:
        return os.getenv("SKU_MAPPING_FILE") or None

    @property
    def log_level(self) -> str:
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def retry_options(self) -> RetryOptions:
        return RetryOptions(max_retries=self.max_retries, retry_delay_ms=self.retry_delay_ms)

    def validate_export_config(self) -> bool:
        """Validate that all numeric and enumerated settings are usable"""
        return not self.get_invalid_vars()

    def get_invalid_vars(self) -> List[str]:
        """Get list of environment variables holding unusable values"""
        invalid = []
        for name in ["MAX_CONCURRENCY", "BATCH_SIZE", "MAX_RETRIES", "RETRY_DELAY_MS"]:
            raw = os.getenv(name)
            if raw is None:
                continue
            try:
                if int(raw) <= 0:
                    invalid.append(name)
            except ValueError:
                invalid.append(name)

        if "BATCH_SIZE" not in invalid and not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            invalid.append("BATCH_SIZE")

        if self.log_level not in LOG_LEVELS:
            invalid.append("LOG_LEVEL")

        return invalid

    @staticmethod
    def _get_int(name: str, default: int) -> int:
        raw = os.getenv(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            return default
