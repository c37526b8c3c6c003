"""Authentication and authorization utilities."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Callable, List, Optional

from fastapi import Depends, Header

from workforce_sync.utils.errors import ForbiddenError


class UserRole(str, Enum):
    """User role definitions for access control."""

    ADMIN = "admin"
    GESTOR = "gestor"
    FRANQUICIADO = "franquiciado"
    ASESORIA = "asesoria"


@dataclass
class CurrentUser:
    """Represents the currently authenticated user."""

    id: uuid.UUID
    roles: List[UserRole] = field(default_factory=lambda: [UserRole.GESTOR])

    def has_role(self, role: UserRole) -> bool:
        """Check if user has a specific role."""
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return UserRole.ADMIN in self.roles


# Stable identity for requests without an X-User-ID header
ANONYMOUS_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000000")


def get_mock_current_user(
    user_id: Optional[uuid.UUID] = None,
    roles: Optional[List[UserRole]] = None,
) -> CurrentUser:
    """
    Create a current user for development/testing.

    Session management lives in front of this service; requests carry the
    user in headers.
    """
    return CurrentUser(
        id=user_id or ANONYMOUS_USER_ID,
        roles=roles or [UserRole.ADMIN],
    )


def get_current_user(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-ID")] = None,
    x_user_role: Annotated[Optional[str], Header(alias="X-User-Role")] = None,
) -> CurrentUser:
    """Get current user from request headers."""
    user_id = None
    if x_user_id:
        try:
            user_id = uuid.UUID(x_user_id)
        except ValueError:
            user_id = None

    roles = None
    if x_user_role:
        try:
            roles = [UserRole(x_user_role)]
        except ValueError:
            roles = None

    return get_mock_current_user(user_id=user_id, roles=roles)


def require_roles(*required_roles: UserRole) -> Callable[..., CurrentUser]:
    """Build a dependency that rejects users lacking every one of the given roles."""

    def dependency(
        current_user: Annotated[CurrentUser, Depends(get_current_user)],
    ) -> CurrentUser:
        if not any(current_user.has_role(role) for role in required_roles):
            raise ForbiddenError(
                message="Insufficient permissions",
                details={"required_roles": [r.value for r in required_roles]},
            )
        return current_user

    return dependency
