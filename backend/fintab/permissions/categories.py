# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    SALES = "SALES"
    INVENTORY = "INVENTORY"
    RECEIPTS = "RECEIPTS"
    CUSTOMERS = "CUSTOMERS"
    EXPENSES = "EXPENSES"
    FINANCE = "FINANCE"
    AUDITS = "AUDITS"
    SETTINGS = "SETTINGS"
    USERS = "USERS"
