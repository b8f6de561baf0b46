import logging

from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

STAFF_ROLES = {User.Role.CASHIER, User.Role.ADMIN}

ROLE_CAPABILITY_MATRIX = {
    "pos.access": STAFF_ROLES,
    "catalog.view": STAFF_ROLES,
    "catalog.manage": {User.Role.ADMIN},
    "order.view": STAFF_ROLES,
    "order.update_status": STAFF_ROLES,
    "order.delete": {User.Role.ADMIN},
    "bill.create": STAFF_ROLES,
    "bill.view": STAFF_ROLES,
    "bill.print": STAFF_ROLES,
    "bill.cancel": {User.Role.ADMIN},
    "bill.view_all": {User.Role.ADMIN},
    "discount.unrestricted": {User.Role.ADMIN},
    "stock.adjust": {User.Role.ADMIN},
    "stock.restock": STAFF_ROLES,
    "purchase.manage": {User.Role.ADMIN},
    "supplier.manage": {User.Role.ADMIN},
    "reports.view": STAFF_ROLES,
    "reports.admin": {User.Role.ADMIN},
    "settings.manage": {User.Role.ADMIN},
    "user.manage": {User.Role.ADMIN},
    "admin.records.manage": {User.Role.ADMIN},
}


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    role = getattr(user, "role", None)
    if role:
        return role
    if getattr(user, "is_staff", False):
        return User.Role.ADMIN
    return User.Role.CASHIER


def user_has_capability(user, capability):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles:
        return False
    return get_user_role(user) in allowed_roles


def is_admin(user):
    return get_user_role(user) == User.Role.ADMIN


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts.

    Actions missing from the view's `permission_action_map` fall through to the other
    permission classes, which is how anonymous menu and order endpoints stay open.
    """

    message = "You do not have permission to perform this action."

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        allowed = user_has_capability(request.user, capability)
        if not allowed:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
                extra={"capability": capability, "request_id": getattr(request, "request_id", None)},
            )
        return allowed
