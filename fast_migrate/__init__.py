"""
Fast-migrate engine: moves SSO applications, groups, users and access
assignments from Okta or OneLogin into a target identity realm.

Import entry points from their modules (fast_migrate.engine,
fast_migrate.config).
"""
__version__ = "1.0.0"

__all__ = [
    "api_client",
    "config",
    "connectors",
    "engine",
    "errors",
    "executor",
    "ledger",
    "mapper",
    "models",
    "summary",
    "target_client",
]
