"""
Identity platform endpoint definitions.
Every path is relative to the API base URL and scoped to one tenant and realm.
"""

from typing import Dict, Any

REALM_PATH = "/v1/tenants/{tenant_id}/realms/{realm_id}"


def get_target_endpoints() -> Dict[str, Any]:
    """Get target platform endpoints configuration."""
    return {
        "realm": {
            "detail": REALM_PATH,
        },

        "identities": {
            "list": REALM_PATH + "/identities",
            "create": REALM_PATH + "/identities",
            "supports_pagination": True,
            "pagination_params": ["page_size", "page_token"],
        },

        "groups": {
            "create": REALM_PATH + "/groups",
            "add_members": REALM_PATH + "/groups/{id}:addMembers",
        },

        # Opaque redirect tiles are SSO configs with a bookmark payload
        "sso_configs": {
            "create": REALM_PATH + "/sso-configs",
            "add_identities": REALM_PATH + "/sso-configs/{id}:addIdentities",
            "add_groups": REALM_PATH + "/sso-configs/{id}:addGroups",
        },
    }
