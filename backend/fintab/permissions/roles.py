# Overview: Default permission sets per business role.
# Owner and Admin are not listed: they pass every check.

BUSINESS_ROLES = [
    "Owner",
    "Admin",
    "Manager",
    "Staff",
    "Cashier",
    "SellerAgent",
    "BankVerifier",
    "Investor",
    "Custom",
]

# Roles that bypass permission lookups entirely
UNRESTRICTED_ROLES = {"Owner", "Admin"}

_COUNTER = {
    "VIEW_COUNTER",
    "CREATE_SALE",
    "CASH_SALE",
    "VIEW_CUSTOMERS",
    "CREATE_CUSTOMER",
    "VIEW_INVENTORY",
    "CREATE_EXPENSE_REQUEST",
}

DEFAULT_ROLE_PERMISSIONS = {
    "Manager": _COUNTER | {
        "BANK_TRANSFER",
        "APPLY_DISCOUNT",
        "ADD_TAX",
        "VIEW_ALL_COMMISSIONS",
        "CREATE_PRODUCT",
        "EDIT_PRODUCT",
        "ADJUST_STOCK",
        "VIEW_COST_PRICE",
        "VIEW_RECEIPTS",
        "EDIT_CUSTOMER",
        "VIEW_EXPENSES",
        "VIEW_BANK_ACCOUNTS",
        "VIEW_AUDITS",
        "VIEW_SETTINGS",
        "VIEW_USERS",
    },
    "Staff": _COUNTER | {"BANK_TRANSFER", "VIEW_RECEIPTS"},
    "Cashier": set(_COUNTER),
    "SellerAgent": {"VIEW_COUNTER", "VIEW_INVENTORY", "VIEW_CUSTOMERS"},
    "BankVerifier": {"VIEW_RECEIPTS", "VERIFY_BANK_SALE", "VIEW_BANK_ACCOUNTS"},
    "Investor": {"VIEW_RECEIPTS"},
    "Custom": set(),
}
