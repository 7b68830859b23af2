# Overview: Default permission sets per role.
#
# Admins and managers do not get UPDATE_DELIVERY_STATUS: only the courier
# carrying the order confirms its delivery.

DEFAULT_ROLE_PERMISSIONS = {
    "admin": {
        "VIEW_ORDERS",
        "CREATE_ORDER",
        "EDIT_ORDER",
        "DELETE_ORDER",
        "ASSIGN_COURIER",
        "VIEW_STOCK",
        "MANAGE_STOCK",
        "VIEW_PURCHASE_PRICE",
        "VIEW_AUDIT",
        "MANAGE_USERS",
    },
    "sales_manager": {
        "VIEW_ORDERS",
        "CREATE_ORDER",
        "EDIT_ORDER",
        "ASSIGN_COURIER",
        "VIEW_STOCK",
        "VIEW_AUDIT",
    },
    "warehouse": {
        "VIEW_ORDERS",
        "VIEW_STOCK",
        "MANAGE_STOCK",
        "VIEW_PURCHASE_PRICE",
        "VIEW_AUDIT",
    },
    "accountant": {
        "VIEW_ORDERS",
        "VIEW_STOCK",
        "VIEW_PURCHASE_PRICE",
        "VIEW_AUDIT",
    },
    "courier": {
        "VIEW_ORDERS",
        "UPDATE_DELIVERY_STATUS",
    },
}
