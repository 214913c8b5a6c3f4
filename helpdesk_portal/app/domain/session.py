"""
Acting-user session state.
"""

from dataclasses import dataclass
from typing import Optional, Union

from helpdesk_shared.errors import AuthenticationError


@dataclass
class PortalSession:
    """Who is using the portal. Owned by the portal instance, not a module global."""

    user_id: Optional[Union[int, str]] = None
    auth_token: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.user_id is not None and bool(self.auth_token)

    def require_user_id(self) -> Union[int, str]:
        if self.user_id is None:
            raise AuthenticationError("No authenticated user", reason="AUTH_REQUIRED")
        return self.user_id

    def clear(self) -> None:
        self.user_id = None
        self.auth_token = None
