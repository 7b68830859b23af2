# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ORDERS --

ORDER_PERMISSIONS = [
    (
        "VIEW_ORDERS",
        "View Orders",
        "List and open orders (couriers only see their own deliveries)",
        PermissionCategory.ORDERS,
    ),
    (
        "CREATE_ORDER",
        "Create Order",
        "Create new orders in status 'new'",
        PermissionCategory.ORDERS,
    ),
    (
        "EDIT_ORDER",
        "Edit Order",
        "Edit order details and move orders through the status lifecycle",
        PermissionCategory.ORDERS,
    ),
    (
        "DELETE_ORDER",
        "Delete Order",
        "Delete new or cancelled orders",
        PermissionCategory.ORDERS,
    ),
    (
        "ASSIGN_COURIER",
        "Assign Courier",
        "Assign or reassign the courier of an order",
        PermissionCategory.ORDERS,
    ),
]


# -- DELIVERY --

DELIVERY_PERMISSIONS = [
    (
        "UPDATE_DELIVERY_STATUS",
        "Update Delivery Status",
        "Advance the delivery sub-status and attach proof of delivery",
        PermissionCategory.DELIVERY,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_STOCK",
        "View Stock",
        "View stock units and stock movements",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_STOCK",
        "Manage Stock",
        "Register stock arrivals and delete unsold units",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_PURCHASE_PRICE",
        "View Purchase Price",
        "See supplier purchase prices on stock units",
        PermissionCategory.INVENTORY,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_AUDIT",
        "View Audit Log",
        "Read the audit trail",
        PermissionCategory.SYSTEM,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create and deactivate staff accounts",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    ORDER_PERMISSIONS
    + DELIVERY_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
