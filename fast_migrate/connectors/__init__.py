"""Source identity provider connectors."""

from .base import SourceConnector
from .okta import OktaConnector
from .onelogin import OneLoginConnector

CONNECTORS = {
    OktaConnector.PROVIDER_NAME: OktaConnector,
    OneLoginConnector.PROVIDER_NAME: OneLoginConnector,
}

__all__ = ["SourceConnector", "OktaConnector", "OneLoginConnector", "CONNECTORS"]
