"""
Permissions and Roles Configuration
This config defines the permission matrix for every resource of the portal and the seed system roles.
Used by the seed script to populate/update roles and permissions.
"""

from opsportal.core.permissions import MANAGE

# Define resources and their actions ("manage" is appended to every resource)
RESOURCES = {
    "users": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "User Management",
    },
    "roles": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "Role Management",
    },
    "permissions": {
        "actions": ["read"],
        "display_name": "Permissions",
    },
    "work_orders": {
        "actions": ["create", "read", "update", "delete", "assign"],
        "display_name": "Work Orders",
    },
    "technicians": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "Technicians",
    },
    "clients": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "Clients",
    },
    "timesheets": {
        "actions": ["create", "read", "update", "approve"],
        "display_name": "Timesheets",
    },
    "equipment": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "Equipment",
    },
    "vehicles": {
        "actions": ["create", "read", "update", "delete"],
        "display_name": "Vehicles",
    },
    "reports": {
        "actions": ["create", "read"],
        "display_name": "Reports & Analytics",
    },
    "settings": {
        "actions": ["read", "update"],
        "display_name": "System Settings",
    },
    "dashboard": {
        "actions": ["read"],
        "display_name": "Dashboard",
    },
}

# Descriptions that differ from the generated "<Action> <resource>" text
PERMISSION_DESCRIPTIONS = {
    "roles:delete": "Delete non-system roles",
    "work_orders:assign": "Assign work orders to technicians",
    "timesheets:approve": "Approve submitted timesheets",
    "dashboard:read": "Access main dashboard",
}

# Seed roles. They are created with is_system = true and can never be deleted.
SYSTEM_ROLES = {
    "super_admin": {
        "display_name": "Super Admin",
        "description": "Full system access with ability to manage roles and permissions",
        "permissions": [f"{resource}:{MANAGE}" for resource in RESOURCES],
    },
    "office_staff": {
        "display_name": "Office Staff",
        "description": "Back-office access to clients, work orders and timesheets",
        "permissions": [
            "dashboard:read",
            "clients:manage",
            "work_orders:manage",
            "technicians:read",
            "timesheets:read",
            "timesheets:approve",
            "equipment:read",
            "vehicles:read",
            "reports:read",
        ],
    },
    "technician": {
        "display_name": "Technician",
        "description": "Field access to assigned work orders and own timesheets",
        "permissions": [
            "dashboard:read",
            "work_orders:read",
            "work_orders:update",
            "timesheets:create",
            "timesheets:read",
            "timesheets:update",
            "equipment:read",
            "vehicles:read",
        ],
    },
}


def get_resource_display_names():
    return {resource: config["display_name"] for resource, config in RESOURCES.items()}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the seed roles
    Format: {
        "permissions": [
            {"name": "users:create", "resource": "users", "action": "create", "description": "..."},
            ...
        ],
        "roles": [
            {
                "name": "super_admin",
                "display_name": "Super Admin",
                "description": "...",
                "is_system": True,
                "permissions": ["clients:manage", ...]
            },
            ...
        ]
    }
    """
    permissions = []
    roles = []

    for resource, config in RESOURCES.items():
        for action in config["actions"] + [MANAGE]:
            permission_name = f"{resource}:{action}"
            if action == MANAGE:
                description = f"Full control over {resource.replace('_', ' ')}"
            else:
                description = f"{action.capitalize()} {resource.replace('_', ' ')}"
            permissions.append({
                "name": permission_name,
                "resource": resource,
                "action": action,
                "description": PERMISSION_DESCRIPTIONS.get(permission_name, description),
            })

    for role_name, config in SYSTEM_ROLES.items():
        roles.append({
            "name": role_name,
            "display_name": config["display_name"],
            "description": config["description"],
            "is_system": True,
            "permissions": sorted(config["permissions"]),
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
