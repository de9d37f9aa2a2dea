"""
Security guards for role-based and ownership-based access control.

Admins may act on any ledger record. A subject may only read obligations,
payments and invoices that belong to them, and may not mutate anything.
"""

from typing import List, Optional
from fastapi import Depends
from fee_ledger.app.core.exceptions import InsufficientPermissionsError
from fee_ledger.app.models.enums import UserRole
from fee_ledger.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/fees")
        async def create_fee(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        InsufficientPermissionsError if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        try:
            user_role = UserRole(current_user.get("role"))
        except ValueError:
            raise InsufficientPermissionsError("Invalid role")

        if user_role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Unauthorized access. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


require_admin = require_role([UserRole.ADMIN])


def is_admin(current_user: dict) -> bool:
    return current_user.get("role") == UserRole.ADMIN.value


def can_access(current_user: dict, resource_owner_id: int) -> bool:
    """
    Pure access predicate for ledger records.

    Admins can access everything; anyone else only records whose subject
    is themselves.
    """
    if is_admin(current_user):
        return True
    return current_user.get("user_id") == resource_owner_id


class OwnershipGuard:
    """
    Ownership checks at the boundary of each read operation.

    Usage:
        ownership_guard = OwnershipGuard()

        fee = await FeeObligationRegistry.get_obligation(db, fee_id)
        ownership_guard.enforce(fee.user_id, current_user, "fee")
    """

    def enforce(
        self,
        resource_owner_id: int,
        current_user: dict,
        resource_name: str = "resource"
    ):
        """
        Raises:
            InsufficientPermissionsError if can_access is False
        """
        if not can_access(current_user, resource_owner_id):
            raise InsufficientPermissionsError(
                f"Unauthorized access. You do not have permission to access this {resource_name}."
            )

    def filter_by_ownership(
        self,
        current_user: dict,
        requested_user_id: Optional[int] = None
    ) -> Optional[int]:
        """
        Get the subject id a listing must be restricted to.

        For admins: the requested filter (None means everyone)
        For subjects: their own id; asking for someone else is refused

        Raises:
            InsufficientPermissionsError if a subject asks for another subject's records
        """
        if is_admin(current_user):
            return requested_user_id

        own_id = current_user.get("user_id")
        if requested_user_id is not None and requested_user_id != own_id:
            raise InsufficientPermissionsError("Unauthorized access")
        return own_id
