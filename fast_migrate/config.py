"""Settings assembly: JSON config + tenant credentials + env-var overrides."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from identity_common.auth import EmptyCredentialProvider, JsonCredentialProvider
from identity_common.config import ConfigLoader

from .errors import ConfigError
from .ledger import ledger_path

DEFAULT_CONFIG_FILE = "configs/config.json"
DEFAULT_CREDENTIALS_FILE = "configs/credential.json"


def _with_scheme(domain: str) -> str:
    domain = domain.rstrip("/")
    if domain.startswith(("http://", "https://")):
        return domain
    return f"https://{domain}"


@dataclass
class OktaSourceConfig:
    domain: str
    api_token: str

    @property
    def base_url(self) -> str:
        return _with_scheme(self.domain)


@dataclass
class OneLoginSourceConfig:
    domain: str
    client_id: str
    client_secret: str

    @property
    def base_url(self) -> str:
        return _with_scheme(self.domain)


@dataclass
class TargetConfig:
    api_base_url: str
    tenant_id: str
    realm_id: str
    api_token: str

    @property
    def base_url(self) -> str:
        return _with_scheme(self.api_base_url)


SourceConfig = Union[OktaSourceConfig, OneLoginSourceConfig]


@dataclass
class MigrationSettings:
    config_loader: ConfigLoader
    provider: str
    source: SourceConfig
    target: TargetConfig

    @property
    def environment(self) -> str:
        return self.config_loader.environment

    @property
    def page_size(self) -> int:
        return self.config_loader.get_page_size()

    @property
    def ledger_file(self) -> Path:
        return ledger_path(self.config_loader.get_ledger_directory(), self.target.tenant_id, self.target.realm_id)


def _require(value: Optional[str], what: str) -> str:
    if not value:
        raise ConfigError(f"{what} is required via credentials file or environment")
    return value


def _okta_config(section: Dict[str, Any]) -> OktaSourceConfig:
    return OktaSourceConfig(
        domain=_require(os.getenv("OKTA_DOMAIN") or section.get("domain"), "OKTA_DOMAIN"),
        api_token=_require(os.getenv("OKTA_API_TOKEN") or section.get("api_token"), "OKTA_API_TOKEN"),
    )


def _onelogin_config(section: Dict[str, Any]) -> OneLoginSourceConfig:
    return OneLoginSourceConfig(
        domain=_require(os.getenv("ONELOGIN_DOMAIN") or section.get("domain"), "ONELOGIN_DOMAIN"),
        client_id=_require(os.getenv("ONELOGIN_CLIENT_ID") or section.get("client_id"), "ONELOGIN_CLIENT_ID"),
        client_secret=_require(
            os.getenv("ONELOGIN_CLIENT_SECRET") or section.get("client_secret"), "ONELOGIN_CLIENT_SECRET"
        ),
    )


def _target_config(section: Dict[str, Any]) -> TargetConfig:
    return TargetConfig(
        api_base_url=_require(os.getenv("BI_API_BASE_URL") or section.get("api_base_url"), "BI_API_BASE_URL"),
        tenant_id=_require(os.getenv("BI_TENANT_ID") or section.get("tenant_id"), "BI_TENANT_ID"),
        realm_id=_require(os.getenv("BI_REALM_ID") or section.get("realm_id"), "BI_REALM_ID"),
        api_token=_require(os.getenv("BI_API_TOKEN") or section.get("api_token"), "BI_API_TOKEN"),
    )


_SOURCE_BUILDERS = {
    "okta": _okta_config,
    "onelogin": _onelogin_config,
}


def load_migration_settings(
    provider: str,
    config_file: Optional[str] = None,
    credentials_file: Optional[str] = None,
    tenant_id: Optional[int] = None,
    base_path: Optional[Path] = None,
) -> MigrationSettings:
    """Load settings with env-var overrides.

    FAST_MIGRATE_CONFIG, FAST_MIGRATE_CREDENTIALS and FAST_MIGRATE_TENANT pick
    the files and tenant entry when the arguments are not given. A missing
    default credentials file is fine when every value comes from the environment.
    """
    if provider not in _SOURCE_BUILDERS:
        raise ConfigError(f"Unknown source provider: {provider}")

    config_loader = ConfigLoader(
        config_file=config_file or os.getenv("FAST_MIGRATE_CONFIG", DEFAULT_CONFIG_FILE),
        base_path=base_path,
    )

    if tenant_id is None:
        try:
            tenant_id = int(os.getenv("FAST_MIGRATE_TENANT", "1"))
        except ValueError:
            raise ConfigError("FAST_MIGRATE_TENANT must be an integer")

    explicit = credentials_file or os.getenv("FAST_MIGRATE_CREDENTIALS")
    path = Path(explicit or DEFAULT_CREDENTIALS_FILE)
    if not path.is_absolute():
        path = config_loader.base_path / path
    if explicit or path.exists():
        tenant_data = JsonCredentialProvider(str(path)).get_tenant_credentials(tenant_id)
    else:
        tenant_data = EmptyCredentialProvider().get_tenant_credentials(tenant_id)

    return MigrationSettings(
        config_loader=config_loader,
        provider=provider,
        source=_SOURCE_BUILDERS[provider](tenant_data.get(provider) or {}),
        target=_target_config(tenant_data.get("beyond_identity") or {}),
    )
