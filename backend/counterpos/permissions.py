# Overview: Permission codes and role defaults.
#
# Permissions are checked by route decorators before a core service is
# called; services themselves only check business preconditions.

# -- SALES --
ACCESS_SALES = "ACCESS_SALES"
GIVE_DISCOUNT = "GIVE_DISCOUNT"
VIEW_SALES_HISTORY = "VIEW_SALES_HISTORY"
CANCEL_SALES = "CANCEL_SALES"

# -- CATALOG --
VIEW_MENU = "VIEW_MENU"
MANAGE_MENU = "MANAGE_MENU"
VIEW_INVENTORY = "VIEW_INVENTORY"
MANAGE_INVENTORY = "MANAGE_INVENTORY"

# -- PARTIES --
VIEW_CUSTOMERS = "VIEW_CUSTOMERS"
MANAGE_CUSTOMERS = "MANAGE_CUSTOMERS"
VIEW_SUPPLIERS = "VIEW_SUPPLIERS"
MANAGE_SUPPLIERS = "MANAGE_SUPPLIERS"
VIEW_PURCHASES = "VIEW_PURCHASES"
MANAGE_PURCHASES = "MANAGE_PURCHASES"
VIEW_PAYMENTS = "VIEW_PAYMENTS"
MANAGE_PAYMENTS = "MANAGE_PAYMENTS"

# -- ADMIN --
VIEW_REPORTS = "VIEW_REPORTS"
MANAGE_SETTINGS = "MANAGE_SETTINGS"
MANAGE_USERS = "MANAGE_USERS"

# -- SHIFTS --
ACCESS_SHIFTS = "ACCESS_SHIFTS"
MANAGE_SHIFTS = "MANAGE_SHIFTS"  # View shift history of all users


ALL_PERMISSIONS = frozenset({
    ACCESS_SALES, GIVE_DISCOUNT, VIEW_SALES_HISTORY, CANCEL_SALES,
    VIEW_MENU, MANAGE_MENU, VIEW_INVENTORY, MANAGE_INVENTORY,
    VIEW_CUSTOMERS, MANAGE_CUSTOMERS, VIEW_SUPPLIERS, MANAGE_SUPPLIERS,
    VIEW_PURCHASES, MANAGE_PURCHASES, VIEW_PAYMENTS, MANAGE_PAYMENTS,
    VIEW_REPORTS, MANAGE_SETTINGS, MANAGE_USERS,
    ACCESS_SHIFTS, MANAGE_SHIFTS,
})

CASHIER_PERMISSIONS = frozenset({
    ACCESS_SALES, VIEW_SALES_HISTORY, VIEW_MENU, VIEW_CUSTOMERS,
    MANAGE_CUSTOMERS, ACCESS_SHIFTS,
})

MANAGER_PERMISSIONS = ALL_PERMISSIONS - {MANAGE_USERS, MANAGE_SETTINGS}

ROLE_DEFAULTS = {
    "admin": ALL_PERMISSIONS,
    "manager": MANAGER_PERMISSIONS,
    "cashier": CASHIER_PERMISSIONS,
}

VALID_ROLES = ("admin", "manager", "cashier", "custom")


def permissions_for_role(role: str, explicit: list[str] | None = None) -> set[str]:
    """Role defaults, or the explicit list (filtered to known codes) for custom users."""
    if role == "custom":
        return {p for p in (explicit or []) if p in ALL_PERMISSIONS}
    return set(ROLE_DEFAULTS.get(role, frozenset()))
