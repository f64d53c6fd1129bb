from typing import Protocol, Dict, Any
import json
import os

from ..errors import ConfigError


class CredentialProvider(Protocol):
    """Abstraction for fetching tenant credentials."""

    def get_tenant_credentials(self, tenant_id: int) -> Dict[str, Any]:
        ...


class JsonCredentialProvider:
    """
    Credential provider that reads tenant credentials from a JSON file
    like configs/credential.json:

        {"tenants": [{"id": 1, "okta": {...}, "onelogin": {...}, "beyond_identity": {...}}]}
    """

    def __init__(self, credentials_file: str = "configs/credential.json"):
        self.credentials_file = credentials_file

    def get_tenant_credentials(self, tenant_id: int) -> Dict[str, Any]:
        if not os.path.exists(self.credentials_file):
            raise ConfigError(f"Credentials file not found: {self.credentials_file}")

        with open(self.credentials_file, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in credentials file {self.credentials_file}: {e}")

        tenants = data.get("tenants", [])
        for t in tenants:
            if t.get("id") == tenant_id:
                return t

        raise ConfigError(f"Tenant {tenant_id} not found in {self.credentials_file}")


class EmptyCredentialProvider:
    """Used when every credential comes from environment variables."""

    def get_tenant_credentials(self, tenant_id: int) -> Dict[str, Any]:
        return {"id": tenant_id}
