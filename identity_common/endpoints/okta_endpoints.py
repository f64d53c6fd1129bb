"""
Okta management API endpoint definitions used during discovery.
All list endpoints paginate with `limit` + `after` taken from the Link header.
"""

from typing import Dict, Any


def get_okta_endpoints() -> Dict[str, Any]:
    """Get Okta endpoints configuration."""
    return {
        # 1. Session check
        "verify": {
            "list": "/api/v1/org",
            "supports_pagination": False,
        },

        # 2. Applications (active only)
        "applications": {
            "list": "/api/v1/apps",
            "supports_pagination": True,
            "pagination_params": ["limit", "after"],
            "filter": 'status eq "ACTIVE"',
        },

        # 3. Groups
        "groups": {
            "list": "/api/v1/groups",
            "members": "/api/v1/groups/{id}/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "after"],
        },

        # 4. Users
        "users": {
            "list": "/api/v1/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "after"],
        },

        # 5. Application assignments
        "application_users": {
            "list": "/api/v1/apps/{id}/users",
            "supports_pagination": True,
            "pagination_params": ["limit", "after"],
        },
        "application_groups": {
            "list": "/api/v1/apps/{id}/groups",
            "supports_pagination": True,
            "pagination_params": ["limit", "after"],
        },
    }
