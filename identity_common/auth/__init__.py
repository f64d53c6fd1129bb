"""
Authentication and credential lookup for source and target APIs.
"""

from .authentication import Authenticator
from .credential_provider import CredentialProvider, EmptyCredentialProvider, JsonCredentialProvider

__all__ = ["Authenticator", "CredentialProvider", "EmptyCredentialProvider", "JsonCredentialProvider"]
