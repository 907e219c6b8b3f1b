# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    SALES_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    RECEIPT_PERMISSIONS,
    CUSTOMER_PERMISSIONS,
    EXPENSE_PERMISSIONS,
    FINANCE_PERMISSIONS,
    AUDIT_PERMISSIONS,
    SETTINGS_PERMISSIONS,
    USER_PERMISSIONS,
)
from .roles import BUSINESS_ROLES, UNRESTRICTED_ROLES, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
    get_role_permission_codes,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "SALES_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "RECEIPT_PERMISSIONS",
    "CUSTOMER_PERMISSIONS",
    "EXPENSE_PERMISSIONS",
    "FINANCE_PERMISSIONS",
    "AUDIT_PERMISSIONS",
    "SETTINGS_PERMISSIONS",
    "USER_PERMISSIONS",
    "BUSINESS_ROLES",
    "UNRESTRICTED_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
    "get_role_permission_codes",
]
