# =============================================================================
# utils/tenant_selector.py - Interactive tenant selection
# =============================================================================

import logging
from typing import Callable, List, Optional

from core.models import TenantInfo


def select_tenant(tenants: List[TenantInfo],
                  input_func: Callable[[str], str] = input) -> Optional[str]:
    """
    Ask the operator which tenant to export.

    Args:
        tenants: Tenants available to the signed-in account
        input_func: Prompt function, replaceable in tests

    Returns:
        The selected tenant id, or None when there is nothing to select or the
        operator cancels
    """
    logger = logging.getLogger(__name__)

    if not tenants:
        logger.error("No tenants available for selection.")
        return None

    if len(tenants) == 1:
        logger.info(f"Auto-selecting only available tenant: {tenants[0].display_name}")
        return tenants[0].id

    print("\n" + "=" * 70)
    print("AVAILABLE TENANTS")
    print("=" * 70 + "\n")
    for index, tenant in enumerate(tenants, start=1):
        print(f"  {index}. {tenant.display_name} ({tenant.default_domain})")
        print(f"     Tenant ID: {tenant.id}")
    print()

    while True:
        try:
            answer = input_func(f"Select a tenant to export users from [1-{len(tenants)}, q to quit] (1): ")
        except (EOFError, KeyboardInterrupt):
            logger.warning("Tenant selection cancelled.")
            return None

        answer = answer.strip()
        if answer.lower() in ('q', 'quit'):
            logger.warning("Tenant selection cancelled.")
            return None

        if not answer:
            choice = 1
        elif answer.isdigit():
            choice = int(answer)
        else:
            choice = 0

        if 1 <= choice <= len(tenants):
            selected = tenants[choice - 1]
            logger.info(f"Selected tenant: {selected.display_name}")
            return selected.id

        print(f"Please enter a number between 1 and {len(tenants)}.")
