# =============================================================================
# main.py - CLI entry point
# =============================================================================

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from core.auth import DeviceCodeAuthenticator
from core.graph_client import GraphClient
from core.models import ProcessingStats
from core.user_processor import UserProcessor
from services.batch_service import BatchService
from services.group_service import GroupService
from services.license_service import LicenseService
from services.mfa_service import MfaService
from services.sku_mapping import SkuMappingService
from services.tenant_service import TenantService
from services.user_service import UserService
from utils.config import Config, LOG_LEVELS
from utils.csv_utils import CSVHandler
from utils.tenant_selector import select_tenant


class _BelowLevelFilter(logging.Filter):
    """Let through only records below a level"""

    def __init__(self, level: int):
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def setup_logging(level: str = "INFO") -> str:
    """Setup logging: stdout for progress messages, stderr for errors, DEBUG to a log file"""
    # Create logs directory if it doesn't exist
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    # Generate date-stamped filename
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = log_dir / f"entra_user_export_{timestamp}.log"

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    root_logger.handlers.clear()

    console_level = getattr(logging, level.upper())

    # Console handler for everything below ERROR
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.addFilter(_BelowLevelFilter(logging.ERROR))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Errors go to stderr
    error_handler = logging.StreamHandler(sys.stderr)
    error_handler.setLevel(max(console_level, logging.ERROR))
    error_handler.setFormatter(formatter)
    root_logger.addHandler(error_handler)

    # File handler
    file_handler = logging.FileHandler(log_filename, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)  # Always log DEBUG to file
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Keep library chatter out of the DEBUG file
    for noisy in ("msal", "urllib3", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized - Console: {level.upper()}, File: DEBUG")
    logger.info(f"Log file: {log_filename}")

    return str(log_filename)


async def choose_tenant(config: Config, authenticator: DeviceCodeAuthenticator) -> Optional[str]:
    """Use the configured tenant, or sign in to 'common' and let the operator pick one"""
    if config.tenant_id.lower() != "common":
        return config.tenant_id

    async with GraphClient(authenticator) as initial_client:
        tenants = await TenantService(initial_client).get_available_tenants()

    return select_tenant(tenants)


async def run_export(config: Config) -> Optional[ProcessingStats]:
    """Run one export; returns None when no tenant was selected"""
    logger = logging.getLogger(__name__)

    authenticator = DeviceCodeAuthenticator(config.client_id, config.tenant_id, config.scopes)

    tenant_id = await choose_tenant(config, authenticator)
    if not tenant_id:
        logger.warning("No tenant selected. Exiting...")
        return None

    retry_options = config.retry_options

    async with GraphClient(authenticator.for_tenant(tenant_id)) as graph_client:
        sku_mapping_service = SkuMappingService(config.sku_mapping_url, config.sku_mapping_file)
        license_service = LicenseService(graph_client, retry_options, sku_mapping_service)
        user_service = UserService(graph_client, retry_options)
        batch_service = BatchService(graph_client, retry_options, config.batch_size)
        mfa_service = MfaService(batch_service)
        group_service = GroupService(graph_client, retry_options)
        user_processor = UserProcessor(
            mfa_service, group_service, license_service, config.max_concurrency
        )

        await license_service.build_license_sku_map()
        has_premium = license_service.has_premium_entitlement()

        users = await user_service.get_all_users(has_premium)
        if not users:
            logger.warning("No users found in the directory.")
            return user_processor.get_stats()

        processed_data = await user_processor.process_all_users(users, has_premium)

    CSVHandler.export_users(processed_data, config.output_dir)

    stats = user_processor.get_stats()
    log_summary(stats, len(processed_data))
    return stats


def log_summary(stats: ProcessingStats, exported: int) -> None:
    logger = logging.getLogger(__name__)
    logger.info("=" * 70)
    logger.info("EXPORT SUMMARY")
    logger.info("=" * 70)
    logger.info(f"Total users: {stats.total_users}")
    logger.info(f"Successfully processed: {stats.processed}")
    logger.info(f"Errors: {stats.errors}")
    logger.info(f"Exported rows: {exported}")
    logger.info(f"Total time: {stats.elapsed_seconds:.1f}s")
    logger.info(f"Average rate: {stats.rate:.1f} users/sec")
    logger.info("=" * 70)


def main():
    """Main CLI entry point"""
    config = Config()

    setup_logging(config.log_level if config.log_level in LOG_LEVELS else "INFO")
    logger = logging.getLogger(__name__)

    if not config.validate_export_config():
        invalid_vars = config.get_invalid_vars()
        logger.error(f"Invalid values for environment variables: {invalid_vars}")
        sys.exit(1)

    logger.info("MICROSOFT ENTRA ID USER EXPORT")

    try:
        stats = asyncio.run(run_export(config))
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        logger.debug("Fatal error details", exc_info=True)
        sys.exit(1)

    if stats is not None:
        logger.info("Export completed successfully!")
    sys.exit(0)


if __name__ == "__main__":
    main()
