# permissions/roles.py

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission

# =========================================================
# ROLE CONSTANTS
# =========================================================
# superadmin: whole platform
# company:    every branch of one company
# branch:     one outlet (counter / manager login)
# waiter:     one outlet, order taking only
ROLE_SUPERADMIN = "superadmin"
ROLE_COMPANY = "company"
ROLE_BRANCH = "branch"
ROLE_WAITER = "waiter"

ALL_ROLES = {
    ROLE_SUPERADMIN,
    ROLE_COMPANY,
    ROLE_BRANCH,
    ROLE_WAITER,
}


# =========================================================
# CAPABILITIES
# =========================================================
# Views protect capabilities, not raw roles.
CAP_BILLS_VIEW = "bills.view"
CAP_BILLS_CREATE = "bills.create"
CAP_BILLS_UPDATE = "bills.update"
CAP_BILLS_ITEM_STATUS = "bills.item_status"

CAP_OFFERS_VIEW = "offers.view"
CAP_OFFERS_MANAGE = "offers.manage"

ALL_CAPABILITIES = {
    CAP_BILLS_VIEW,
    CAP_BILLS_CREATE,
    CAP_BILLS_UPDATE,
    CAP_BILLS_ITEM_STATUS,
    CAP_OFFERS_VIEW,
    CAP_OFFERS_MANAGE,
}

ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_SUPERADMIN: {*ALL_CAPABILITIES},
    ROLE_COMPANY: {
        CAP_BILLS_VIEW,
        CAP_OFFERS_VIEW,
    },
    ROLE_BRANCH: {
        CAP_BILLS_VIEW,
        CAP_BILLS_CREATE,
        CAP_BILLS_UPDATE,
        CAP_BILLS_ITEM_STATUS,
        CAP_OFFERS_VIEW,
        CAP_OFFERS_MANAGE,
    },
    ROLE_WAITER: {
        CAP_BILLS_VIEW,
        CAP_BILLS_CREATE,
        CAP_BILLS_UPDATE,
        CAP_BILLS_ITEM_STATUS,
    },
}


# =========================================================
# Helpers
# =========================================================
def get_user_role(user) -> Optional[str]:
    return getattr(user, "role", None)


def effective_capabilities_for(user) -> set[str]:
    if getattr(user, "is_superuser", False):
        return set(ALL_CAPABILITIES)
    return set(ROLE_CAPABILITIES.get(get_user_role(user), set()))


def is_platform_admin(user) -> bool:
    return bool(getattr(user, "is_superuser", False)) or get_user_role(user) == ROLE_SUPERADMIN


def can_act_on_branch(user, branch) -> bool:
    """
    Branch scope check used before any bill write.

    - superadmin: any branch
    - company: branches of the user's company
    - branch / waiter: only the user's own branch
    """
    if user is None or branch is None:
        return False
    if is_platform_admin(user):
        return True

    role = get_user_role(user)
    if role == ROLE_COMPANY:
        return bool(user.company_id) and user.company_id == branch.company_id
    if role in {ROLE_BRANCH, ROLE_WAITER}:
        return bool(user.branch_id) and user.branch_id == branch.id
    return False


def scope_bills_for(user, queryset):
    """Restrict a Bill queryset to what the actor may see."""
    if is_platform_admin(user):
        return queryset

    role = get_user_role(user)
    if role == ROLE_COMPANY and user.company_id:
        return queryset.filter(company_id=user.company_id)
    if role in {ROLE_BRANCH, ROLE_WAITER} and user.branch_id:
        return queryset.filter(branch_id=user.branch_id)
    return queryset.none()


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_BILLS_CREATE

    Views with per-action needs may define get_required_capability().
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        getter = getattr(view, "get_required_capability", None)
        required = getter() if callable(getter) else getattr(view, "required_capability", None)
        if not required:
            # deny-by-default to avoid accidental open endpoints
            return False

        return required in effective_capabilities_for(user)
