"""Role-Based Access Control (RBAC) utilities."""

from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from tableside.core.security import decode_access_token


class UserRole(str, Enum):
    """User roles for RBAC."""

    OWNER = "owner"
    MANAGER = "manager"
    WAITER = "waiter"
    CHEF = "chef"


# Role hierarchy: owner > manager > waiter/chef
ROLE_HIERARCHY = {
    UserRole.OWNER: 3,
    UserRole.MANAGER: 2,
    UserRole.WAITER: 1,
    UserRole.CHEF: 1,
}


class TokenData:
    """Decoded token data.

    Attributes:
        user_id: The user's database ID.
        email: The user's email address.
        role: The user's role.
        restaurant_id: Tenant the user belongs to. None for platform owners.
    """

    def __init__(self, user_id: int, email: str, role: UserRole,
                 restaurant_id: Optional[int] = None):
        self.user_id = user_id
        self.id = user_id
        self.email = email
        self.role = role
        self.restaurant_id = restaurant_id

    def can_access_restaurant(self, restaurant_id: int) -> bool:
        """Owners see every tenant, everyone else only their own."""
        return self.role == UserRole.OWNER or self.restaurant_id == restaurant_id


async def get_current_user(request: Request) -> TokenData:
    """Get the current authenticated user from the Bearer token."""
    payload = None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        if token:
            payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    role = payload.get("role")

    if user_id is None or email is None or role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    try:
        user_role = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid role in token",
        )

    restaurant_id = payload.get("restaurant_id")
    return TokenData(
        user_id=int(user_id), email=email, role=user_role,
        restaurant_id=int(restaurant_id) if restaurant_id is not None else None,
    )


def require_role(minimum_role: UserRole):
    """Dependency to require a minimum role level."""

    async def role_checker(
        current_user: Annotated[TokenData, Depends(get_current_user)]
    ) -> TokenData:
        user_level = ROLE_HIERARCHY.get(current_user.role, 0)
        required_level = ROLE_HIERARCHY.get(minimum_role, 0)

        if user_level < required_level:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role {minimum_role.value} or higher",
            )
        return current_user

    return role_checker


RequireStaff = Annotated[TokenData, Depends(require_role(UserRole.WAITER))]
RequireManager = Annotated[TokenData, Depends(require_role(UserRole.MANAGER))]
