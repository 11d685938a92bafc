# =============================================================================
# services/group_service.py - Security group membership lookup
# =============================================================================

import logging
from typing import Any, Dict, List

from core.graph_client import GraphClient
from core.models import SecurityGroupInfo
from utils.retry import RetryOptions, retry_with_backoff

GROUP_ODATA_TYPE = "#microsoft.graph.group"


class GroupService:
    """Retrieves the security groups a user is a direct member of"""

    def __init__(self, client: GraphClient, retry_options: RetryOptions):
        self.client = client
        self.retry_options = retry_options
        self.logger = logging.getLogger(self.__class__.__name__)

    async def get_user_security_groups(self, user_id: str) -> SecurityGroupInfo:
        """Get security-enabled groups, sorted by name; never raises"""
        try:
            memberships = await self._get_memberships(user_id)
            return self.filter_security_groups(memberships)
        except Exception as e:
            self.logger.warning(f"Failed to get groups for user {user_id}: {e}")
            return SecurityGroupInfo()

    @staticmethod
    def filter_security_groups(memberships: List[Dict[str, Any]]) -> SecurityGroupInfo:
        """Keep groups (not administrative units or roles) that are security enabled"""
        security_groups = [
            item for item in memberships
            if item.get('@odata.type') == GROUP_ODATA_TYPE and item.get('securityEnabled')
        ]
        names = sorted(group.get('displayName') or '' for group in security_groups)
        return SecurityGroupInfo(groups=names, count=len(security_groups))

    async def _get_memberships(self, user_id: str) -> List[Dict[str, Any]]:
        memberships: List[Dict[str, Any]] = []
        next_link = f"/users/{user_id}/memberOf"

        while next_link:
            link = next_link
            response = await retry_with_backoff(lambda: self.client.get(link), self.retry_options)
            memberships.extend(response.get('value') or [])
            next_link = response.get('@odata.nextLink')

        return memberships
