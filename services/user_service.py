# =============================================================================
# services/user_service.py - Paginated user listing
# =============================================================================

import logging
import sys
from typing import List, Optional, TextIO

from core.graph_client import GraphClient
from core.models import GraphUser
from utils.retry import RetryOptions, retry_with_backoff

USER_PROPERTIES = [
    'id', 'givenName', 'surname', 'displayName', 'userPrincipalName', 'mail',
    'jobTitle', 'department', 'companyName', 'officeLocation', 'employeeId',
    'mobilePhone', 'businessPhones', 'streetAddress', 'city', 'postalCode',
    'state', 'country', 'userType', 'onPremisesSyncEnabled', 'accountEnabled',
    'createdDateTime', 'assignedLicenses'
]

# signInActivity can only be selected on tenants with Entra ID Premium
SIGN_IN_ACTIVITY_PROPERTY = 'signInActivity'

PAGE_SIZE = 999


class UserService:
    """Retrieves every user of the tenant"""

    def __init__(self, client: GraphClient, retry_options: RetryOptions,
                 stream: Optional[TextIO] = None):
        self.client = client
        self.retry_options = retry_options
        self.stream = stream
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def build_query(has_premium: bool) -> dict:
        properties = list(USER_PROPERTIES)
        if has_premium:
            properties.append(SIGN_IN_ACTIVITY_PROPERTY)

        return {
            '$select': ','.join(properties),
            '$expand': 'manager($select=displayName,userPrincipalName)',
            '$top': str(PAGE_SIZE),
        }

    async def get_all_users(self, has_premium: bool) -> List[GraphUser]:
        """Follow @odata.nextLink until all pages are read; failures propagate"""
        self.logger.info("Retrieving all users...")
        stream = self.stream or sys.stdout

        users: List[GraphUser] = []
        next_link: Optional[str] = "/users"
        params: Optional[dict] = self.build_query(has_premium)

        try:
            while next_link:
                link, query = next_link, params
                response = await retry_with_backoff(
                    lambda: self.client.get(link, params=query),
                    self.retry_options
                )

                users.extend(GraphUser.from_graph(item) for item in response.get('value') or [])

                # nextLink already carries the query string
                next_link = response.get('@odata.nextLink')
                params = None

                stream.write(f"\r   Retrieved {len(users)} users...")
                stream.flush()

            stream.write("\n")
            self.logger.info(f"Found {len(users)} users")
            return users

        except Exception as e:
            stream.write("\n")
            self.logger.error(f"Failed to retrieve users: {e}")
            raise
