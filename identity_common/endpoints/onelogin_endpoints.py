"""
OneLogin API v2 endpoint definitions used during discovery.
List endpoints paginate with `limit` + `cursor` taken from the After-Cursor header.
"""

from typing import Dict, Any


def get_onelogin_endpoints() -> Dict[str, Any]:
    """Get OneLogin endpoints configuration."""
    return {
        "token": {
            "create": "/auth/oauth2/v2/token",
        },

        "verify": {
            "list": "/api/2/apps",
            "supports_pagination": False,
        },

        # Applications; detail carries icon_url and role_ids
        "applications": {
            "list": "/api/2/apps",
            "detail": "/api/2/apps/{id}",
            "launch": "/launch/{id}",
            "supports_pagination": True,
            "pagination_params": ["limit", "cursor"],
        },

        # Roles stand in for groups
        "roles": {
            "list": "/api/2/roles",
            "members": "/api/2/roles/{id}/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "cursor"],
        },

        "users": {
            "list": "/api/2/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "cursor"],
        },

        "application_users": {
            "list": "/api/2/apps/{id}/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "cursor"],
        },
    }
