"""
Endpoint definitions for the source and target APIs.
"""

from .okta_endpoints import get_okta_endpoints
from .onelogin_endpoints import get_onelogin_endpoints
from .target_endpoints import get_target_endpoints

__all__ = ["get_okta_endpoints", "get_onelogin_endpoints", "get_target_endpoints"]
