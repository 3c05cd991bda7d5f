"""
Security guards for role-based and party-based access control.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from campus_parking.app.models.enums import UserRole
from campus_parking.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/admin/rentals/{rental_id}/resolve")
        async def resolve(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])


class RentalPartyGuard:
    """
    Ensures the caller is a party (owner or renter) of a rental.

    Usage:
        party_guard = RentalPartyGuard()
        party_guard.enforce(rental, current_user)
    """

    def is_party(self, rental, current_user: dict) -> bool:
        if current_user.get("role") == UserRole.ADMIN.value:
            return True
        user_id = current_user.get("user_id")
        return user_id in (rental.owner_id, rental.renter_id)

    def enforce(self, rental, current_user: dict, renter_only: bool = False):
        """
        Raise 403 unless the caller may act on the rental.

        Args:
            renter_only: only the renter may act (reassignment decisions)
        """
        if renter_only:
            allowed = current_user.get("user_id") == rental.renter_id
        else:
            allowed = self.is_party(rental, current_user)

        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied. You are not a party to this rental."
            )
