"""
Role-based permissions with per-user grants.

Effective permissions are the role defaults plus whatever has been granted
explicitly on the user row. Admins always hold every permission.
"""

from typing import Iterable

ALL_PERMISSIONS = frozenset(
    {
        "customers.view",
        "customers.manage",
        "invoices.view",
        "invoices.manage",
        "quotes.view",
        "quotes.manage",
        "expenses.view",
        "expenses.manage",
        "expenses.approve",
        "messages.manage",
        "fleet.view",
        "fleet.manage",
        "dispatch.view",
        "dispatch.manage",
        "users.view",
        "users.manage",
        "settings.manage",
    }
)

ROLES = ("admin", "manager", "technician", "user")

ROLE_PERMISSIONS: dict[str, frozenset] = {
    "admin": ALL_PERMISSIONS,
    "manager": frozenset(
        {
            "customers.view",
            "customers.manage",
            "invoices.view",
            "invoices.manage",
            "quotes.view",
            "quotes.manage",
            "expenses.view",
            "expenses.manage",
            "expenses.approve",
            "messages.manage",
            "fleet.view",
            "fleet.manage",
            "dispatch.view",
            "dispatch.manage",
            "users.view",
        }
    ),
    "technician": frozenset(
        {
            "customers.view",
            "quotes.view",
            "expenses.view",
            "expenses.manage",
            "messages.manage",
            "fleet.view",
            "dispatch.view",
        }
    ),
    "user": frozenset({"customers.view", "messages.manage"}),
}


def unknown_permissions(names: Iterable[str]) -> list[str]:
    """Return the names that aren't real permissions, sorted"""
    return sorted(set(names) - ALL_PERMISSIONS)


def effective_permissions(user) -> set[str]:
    """Role defaults plus explicit grants"""
    granted = set(ROLE_PERMISSIONS.get(user.role, frozenset()))
    granted.update(p for p in (user.permissions or []) if p in ALL_PERMISSIONS)
    return granted


def has_permission(user, permission: str) -> bool:
    return permission in effective_permissions(user)
