"""Thin caller into the identity platform's realm-scoped endpoints.

Every method is exactly one HTTP call so the engine can submit each through
the executor.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from identity_common.endpoints import get_target_endpoints

from .api_client import ApiClient
from .errors import ValidationError
from .models import (
    GROUP,
    USER,
    TargetAppTileRequest,
    TargetAssignmentRequest,
    TargetGroupRequest,
    TargetIdentityRequest,
)

logger = logging.getLogger("fast_migrate.target_client")


class TargetClient:
    def __init__(self, api_client: ApiClient, tenant_id: str, realm_id: str, page_size: int = 200):
        self.api_client = api_client
        self.tenant_id = tenant_id
        self.realm_id = realm_id
        self.page_size = page_size
        self.endpoints = get_target_endpoints()

    async def __aenter__(self):
        await self.api_client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.api_client.__aexit__(exc_type, exc_val, exc_tb)

    def _path(self, template: str, **kwargs) -> str:
        return template.format(tenant_id=self.tenant_id, realm_id=self.realm_id, **kwargs)

    @staticmethod
    def _created_id(payload: Any, what: str) -> str:
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError(None, f"{what} response has no id: {payload!r}")
        return str(payload["id"])

    async def verify(self) -> Dict[str, Any]:
        payload, _ = await self.api_client.get(self._path(self.endpoints["realm"]["detail"]))
        return payload or {}

    async def list_identities(self, page_token: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """One page of identities and the token of the next page, if any."""
        params: Dict[str, Any] = {"page_size": self.page_size}
        if page_token:
            params["page_token"] = page_token
        payload, _ = await self.api_client.get(self._path(self.endpoints["identities"]["list"]), params)
        payload = payload or {}
        return payload.get("identities") or [], payload.get("next_page_token") or None

    async def create_identity(self, request: TargetIdentityRequest) -> str:
        payload, _ = await self.api_client.post(
            self._path(self.endpoints["identities"]["create"]), request.to_payload()
        )
        return self._created_id(payload, "identity")

    async def create_group(self, request: TargetGroupRequest) -> str:
        payload, _ = await self.api_client.post(self._path(self.endpoints["groups"]["create"]), request.to_payload())
        return self._created_id(payload, "group")

    async def add_group_members(self, group_id: str, identity_ids: Sequence[str]) -> None:
        await self.api_client.post(
            self._path(self.endpoints["groups"]["add_members"], id=group_id),
            {"identity_ids": list(identity_ids)},
        )

    async def create_sso_config(self, request: TargetAppTileRequest) -> str:
        payload, _ = await self.api_client.post(
            self._path(self.endpoints["sso_configs"]["create"]), request.to_payload()
        )
        return self._created_id(payload, "sso config")

    async def assign(self, request: TargetAssignmentRequest) -> None:
        if request.principal_kind == USER:
            path = self.endpoints["sso_configs"]["add_identities"]
            body = {"identity_ids": [request.target_principal_id]}
        elif request.principal_kind == GROUP:
            path = self.endpoints["sso_configs"]["add_groups"]
            body = {"group_ids": [request.target_principal_id]}
        else:
            raise ValidationError(None, f"unsupported principal kind {request.principal_kind}")
        await self.api_client.post(self._path(path, id=request.tile_id), body)
