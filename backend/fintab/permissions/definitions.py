# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- SALES --

SALES_PERMISSIONS = [
    (
        "VIEW_COUNTER",
        "View Counter",
        "Access the counter and build carts",
        PermissionCategory.SALES,
    ),
    (
        "CREATE_SALE",
        "Create Sale",
        "Finalize checkout transactions",
        PermissionCategory.SALES,
    ),
    (
        "CASH_SALE",
        "Cash Settlement",
        "Process cash-based payments",
        PermissionCategory.SALES,
    ),
    (
        "BANK_TRANSFER",
        "Bank Transfer",
        "Accept bank receipt/transfer payments",
        PermissionCategory.SALES,
    ),
    (
        "APPLY_DISCOUNT",
        "Apply Discount",
        "Apply a discount during checkout",
        PermissionCategory.SALES,
    ),
    (
        "ADD_TAX",
        "Add Tax",
        "Change the tax rate at checkout",
        PermissionCategory.SALES,
    ),
    (
        "VERIFY_BANK_SALE",
        "Verify Bank Sale",
        "Confirm or reject sales paid by bank receipt",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_ALL_COMMISSIONS",
        "View All Commissions",
        "See commission totals for every staff member",
        PermissionCategory.SALES,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "Access the product registry",
        PermissionCategory.INVENTORY,
    ),
    (
        "CREATE_PRODUCT",
        "Create Product",
        "Enroll new products",
        PermissionCategory.INVENTORY,
    ),
    (
        "EDIT_PRODUCT",
        "Edit Product",
        "Modify product details, tiers and variants",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_STOCK",
        "Adjust Stock",
        "Perform manual stock adjustments",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_COST_PRICE",
        "View Cost Price",
        "See unit acquisition costs",
        PermissionCategory.INVENTORY,
    ),
]


# -- RECEIPTS --

RECEIPT_PERMISSIONS = [
    (
        "VIEW_RECEIPTS",
        "View Receipts",
        "Access the sales ledger",
        PermissionCategory.RECEIPTS,
    ),
]


# -- CUSTOMERS --

CUSTOMER_PERMISSIONS = [
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "Access the client registry",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "CREATE_CUSTOMER",
        "Create Customer",
        "Enroll new clients",
        PermissionCategory.CUSTOMERS,
    ),
    (
        "EDIT_CUSTOMER",
        "Edit Customer",
        "Modify client data",
        PermissionCategory.CUSTOMERS,
    ),
]


# -- EXPENSES --

EXPENSE_PERMISSIONS = [
    (
        "VIEW_EXPENSES",
        "View Expenses",
        "Access the expense ledger",
        PermissionCategory.EXPENSES,
    ),
    (
        "CREATE_EXPENSE_REQUEST",
        "Create Expense Request",
        "Submit spend requests for review",
        PermissionCategory.EXPENSES,
    ),
    (
        "APPROVE_EXPENSE",
        "Approve Expense",
        "Approve or reject pending expense requests",
        PermissionCategory.EXPENSES,
    ),
]


# -- FINANCE --

FINANCE_PERMISSIONS = [
    (
        "VIEW_BANK_ACCOUNTS",
        "View Bank Accounts",
        "See bank accounts and their ledgers",
        PermissionCategory.FINANCE,
    ),
    (
        "MANAGE_BANK_ACCOUNTS",
        "Manage Bank Accounts",
        "Create accounts, deposit and transfer funds",
        PermissionCategory.FINANCE,
    ),
]


# -- AUDITS --

AUDIT_PERMISSIONS = [
    (
        "VIEW_AUDITS",
        "View Audits",
        "See cash counts, goods receiving, inventory checks and costing",
        PermissionCategory.AUDITS,
    ),
]


# -- SETTINGS --

SETTINGS_PERMISSIONS = [
    (
        "VIEW_SETTINGS",
        "View Settings",
        "Access business settings",
        PermissionCategory.SETTINGS,
    ),
    (
        "MANAGE_SETTINGS",
        "Manage Settings",
        "Change business settings and workflow role assignments",
        PermissionCategory.SETTINGS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "See business members",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Invite members, change roles and permission overrides",
        PermissionCategory.USERS,
    ),
]


PERMISSION_DEFINITIONS = (
    SALES_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + RECEIPT_PERMISSIONS
    + CUSTOMER_PERMISSIONS
    + EXPENSE_PERMISSIONS
    + FINANCE_PERMISSIONS
    + AUDIT_PERMISSIONS
    + SETTINGS_PERMISSIONS
    + USER_PERMISSIONS
)
