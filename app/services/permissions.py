"""Fixed role/permission matrix.

Each module grants a subset of view/create/update/delete per role. The
owner is allowed everything regardless of the table.
"""
from fastapi import Depends

from app.core.errors import PermissionDenied
from app.services.auth import get_current_user

ACTIONS = ("view", "create", "update", "delete")
MODULES = (
    "profile", "language", "appearance", "notifications", "users-management",
    "dashboard", "orders", "tables", "inventory", "settings", "reports",
)
SETTINGS_SECTIONS = ("profile", "appearance", "language", "notifications", "company", "security", "billing")


def _p(flags: str) -> dict:
    """'vcud' style flags -> {'view': bool, ...}; '-' means denied."""
    return {action: flag != "-" for action, flag in zip(ACTIONS, flags)}


def _sections(*allowed: str) -> dict:
    return {section: section in allowed for section in SETTINGS_SECTIONS}


_BASIC_SECTIONS = _sections("profile", "appearance", "language", "notifications")

ROLE_PERMISSIONS = {
    "owner": {
        **{module: _p("vcud") for module in MODULES},
        "settings": dict(_p("vcud"), sections=_sections(*SETTINGS_SECTIONS)),
    },
    "admin": {
        "profile": _p("vcu-"),
        "language": _p("vcud"),
        "appearance": _p("vcud"),
        "notifications": _p("vcud"),
        "users-management": _p("vcu-"),
        "dashboard": _p("vcud"),
        "orders": _p("vcud"),
        "tables": _p("vcud"),
        "inventory": _p("vcu-"),
        "reports": _p("vc--"),
        "settings": dict(_p("v-u-"), sections=_sections("profile", "appearance", "language", "notifications", "company")),
    },
    "manager": {
        "profile": _p("v-u-"),
        "language": _p("vcud"),
        "appearance": _p("vcud"),
        "notifications": _p("vcud"),
        "users-management": _p("v---"),
        "dashboard": _p("v---"),
        "orders": _p("vcud"),
        "tables": _p("vcud"),
        "inventory": _p("vcu-"),
        "reports": _p("vc--"),
        "settings": dict(_p("v-u-"), sections=_BASIC_SECTIONS),
    },
    "chef": {
        "profile": _p("v-u-"),
        "language": _p("vcud"),
        "appearance": _p("vcud"),
        "notifications": _p("vcud"),
        "users-management": _p("----"),
        "dashboard": _p("----"),
        "orders": _p("v-u-"),
        "tables": _p("v---"),
        "inventory": _p("v-u-"),
        "reports": _p("----"),
        "settings": dict(_p("v-u-"), sections=_BASIC_SECTIONS),
    },
    "barman": {
        "profile": _p("v---"),
        "language": _p("v---"),
        "appearance": _p("v---"),
        "notifications": _p("v---"),
        "users-management": _p("----"),
        "dashboard": _p("----"),
        "orders": _p("v-u-"),
        "tables": _p("v---"),
        "inventory": _p("v---"),
        "reports": _p("----"),
        "settings": dict(_p("v-u-"), sections=_BASIC_SECTIONS),
    },
    "waiter": {
        "profile": _p("v-u-"),
        "language": _p("vcud"),
        "appearance": _p("vcud"),
        "notifications": _p("vcud"),
        "users-management": _p("----"),
        "dashboard": _p("----"),
        "orders": _p("vcu-"),
        "tables": _p("vcu-"),
        "inventory": _p("----"),
        "reports": _p("----"),
        "settings": dict(_p("v-u-"), sections=_BASIC_SECTIONS),
    },
}

# roles allowed to take payment and close an order
CLOSE_ORDER_ROLES = ("owner", "admin", "manager")


def has_permission(role: str, module: str, action: str) -> bool:
    if role == "owner":
        return True
    return bool(ROLE_PERMISSIONS.get(role, {}).get(module, {}).get(action, False))


def can_access_settings_section(role: str, section: str) -> bool:
    if role == "owner":
        return True
    return bool(ROLE_PERMISSIONS.get(role, {}).get("settings", {}).get("sections", {}).get(section, False))


def permissions_for(role: str) -> dict:
    return ROLE_PERMISSIONS.get(role, {})


def can_change_role(actor_role: str, current_role: str, new_role: str) -> bool:
    """Role changes need users-management update; owner is granted or revoked only by an owner."""
    if not has_permission(actor_role, "users-management", "update"):
        return False
    if "owner" in (current_role, new_role) and actor_role != "owner":
        return False
    return True


def require_permission(module: str, action: str):
    """Return a dependency that ensures the current user may do ``action`` on ``module``.

    Usage in a route:
        @router.post('')
        def create(current_user=Depends(require_permission('orders', 'create'))):
            ...
    """
    def permission_checker(current_user=Depends(get_current_user)):
        if not has_permission(current_user.role, module, action):
            raise PermissionDenied(f"Sem permissão para {action} em {module}")
        return current_user

    return permission_checker
