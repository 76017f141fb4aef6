"""
Okta Users API integration module.

Implements the IdentityProviderBase interface on top of the Okta
``/api/v1/users`` endpoints: cursor-paged listing and partial profile updates.
"""

import logging
from typing import Dict, Any, Iterator
from urllib.parse import quote

from .base import IdentityProviderBase, IdentityProviderError, PaginationError
from .pagination import parse_next_link
from ..config import MIN_PAGE_SIZE, MAX_PAGE_SIZE
from ..models import IdentityRecord

logger = logging.getLogger(__name__)

USERS_PATH = '/api/v1/users'


class OktaUsersAPI(IdentityProviderBase):
    """Okta Users API client."""

    def iter_users(self, limit: int = 200) -> Iterator[IdentityRecord]:
        """
        Yield every user in the org, following rel="next" links page by page.

        The returned generator is single pass; a second iteration yields nothing
        rather than fetching again. Any failure while paging propagates.

        Args:
            limit: Users per page (1-1000)

        Raises:
            ValueError: If limit is out of range
            IdentityProviderError: On transport, HTTP or parse failures
        """
        if not MIN_PAGE_SIZE <= int(limit) <= MAX_PAGE_SIZE:
            raise ValueError(f"Page size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}, got {limit}")
        return self._page_through(f"{USERS_PATH}?limit={int(limit)}")

    def _page_through(self, first_url: str) -> Iterator[IdentityRecord]:
        url = first_url
        page = 0
        seen_urls = set()

        while url:
            if url in seen_urls:
                raise PaginationError(f"Next link repeats an already fetched page: {url}")
            seen_urls.add(url)

            users, headers = self.request_with_headers('GET', url)
            page += 1

            if not isinstance(users, list):
                raise IdentityProviderError(f"Expected a list of users on page {page}, got {type(users).__name__}")

            logger.debug(f"Page {page}: received {len(users)} users")
            for user in users:
                yield IdentityRecord.from_api(user)

            url = parse_next_link(headers.get('link'))

        logger.info(f"Listed all users across {page} pages")

    def update_employee_number(self, user_id: str, employee_number: str) -> bool:
        """
        Set profile.employeeNumber on one user.

        POST /api/v1/users/{id} with a profile-only body is a partial update;
        other profile attributes are left untouched.

        Raises:
            IdentityProviderError: If the update call fails
        """
        if not user_id:
            raise IdentityProviderError("Cannot update a user without an id")

        body = {'profile': {'employeeNumber': employee_number}}
        self.request('POST', f"{USERS_PATH}/{quote(user_id, safe='')}", body)
        logger.debug(f"Set employeeNumber on user {user_id}")
        return True

    def get_current_user(self) -> Dict[str, Any]:
        return self.request('GET', f"{USERS_PATH}/me")
