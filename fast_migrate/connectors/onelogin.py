"""OneLogin source connector.

OneLogin grants application access through roles. Roles are surfaced as
groups; an app's linked roles become group assignments, and users who reach
the app without belonging to any linked role become direct user assignments.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, AsyncIterator, Dict, FrozenSet, List, Optional

from identity_common.endpoints import get_onelogin_endpoints

from ..errors import ApiError, EntityFailed, describe
from ..models import (
    GROUP,
    USER,
    PrincipalRef,
    SourceApplication,
    SourceAssignment,
    SourceGroup,
    SourceUser,
)

logger = logging.getLogger("fast_migrate.connectors.onelogin")

AUTH_METHODS = {
    0: "password",
    1: "openid",
    2: "saml",
    3: "api",
    4: "google",
    6: "forms_based",
    7: "wsfed",
    8: "oidc",
}


class OneLoginConnector:
    PROVIDER_NAME = "onelogin"

    def __init__(self, client, executor, page_size: int = 200):
        self.client = client
        self.executor = executor
        self.page_size = page_size
        self.endpoints = get_onelogin_endpoints()
        self._app_roles: Dict[str, List[str]] = {}
        self._role_members: Dict[str, FrozenSet[str]] = {}

    async def verify(self) -> None:
        await self.executor.submit(
            partial(self.client.get, self.endpoints["verify"]["list"], {"limit": 1}), label="onelogin verify"
        )

    async def _paginate(
        self, path: str, params: Optional[Dict[str, Any]] = None, label: str = ""
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield items page by page, following the After-Cursor header."""
        params = dict(params or {})
        params.setdefault("limit", self.page_size)
        cursor: Optional[str] = None
        page = 0

        while True:
            query = dict(params)
            if cursor:
                query["cursor"] = cursor
            page += 1
            payload, headers = await self.executor.submit(
                partial(self.client.get, path, query), label=f"{label or path} page {page}"
            )
            if isinstance(payload, dict):
                payload = payload.get("data")
            items = payload if isinstance(payload, list) else []
            logger.debug("Page %d of %s: %d items", page, path, len(items))
            for item in items:
                yield item

            cursor = (headers or {}).get("After-Cursor")
            if not cursor or not items:
                break

    async def _get(self, path: str, label: str) -> Dict[str, Any]:
        payload, _ = await self.executor.submit(partial(self.client.get, path), label=label)
        return payload or {}

    async def _linked_roles(self, application_id: str) -> List[str]:
        if application_id not in self._app_roles:
            detail_path = self.endpoints["applications"]["detail"].format(id=application_id)
            detail = await self._get(detail_path, label=f"onelogin app {application_id}")
            self._app_roles[application_id] = [str(r) for r in detail.get("role_ids") or []]
        return self._app_roles[application_id]

    async def _members_of(self, role_id: str) -> FrozenSet[str]:
        if role_id not in self._role_members:
            path = self.endpoints["roles"]["members"].format(id=role_id)
            members = [str(u["id"]) async for u in self._paginate(path, label=f"onelogin role {role_id} users")]
            self._role_members[role_id] = frozenset(members)
        return self._role_members[role_id]

    async def list_applications(self) -> AsyncIterator[SourceApplication]:
        definition = self.endpoints["applications"]
        async for app in self._paginate(definition["list"], label="onelogin apps"):
            app_id = str(app["id"])
            launch_url = f"{self.client.base_url}{definition['launch'].format(id=app_id)}"
            # the list payload lacks icon_url and role_ids
            try:
                detail = await self._get(definition["detail"].format(id=app_id), label=f"onelogin app {app_id}")
            except (EntityFailed, ApiError) as exc:
                logger.error("Could not fetch OneLogin app %s: %s", app_id, describe(exc))
                yield SourceApplication(
                    source_id=app_id,
                    name=app.get("name") or app_id,
                    protocol=AUTH_METHODS.get(app.get("auth_method"), "unknown"),
                    login_url=launch_url,
                    discovery_error=f"app detail fetch failed: {describe(exc)}",
                )
                continue
            role_ids = [str(r) for r in detail.get("role_ids") or []]
            self._app_roles[app_id] = role_ids
            yield SourceApplication(
                source_id=app_id,
                name=app.get("name") or app_id,
                protocol=AUTH_METHODS.get(app.get("auth_method"), "unknown"),
                login_url=launch_url,
                icon_url=detail.get("icon_url") or app.get("icon_url"),
                assignment_refs=tuple(PrincipalRef(GROUP, r) for r in role_ids),
            )

    async def list_groups(self) -> AsyncIterator[SourceGroup]:
        async for role in self._paginate(self.endpoints["roles"]["list"], label="onelogin roles"):
            role_id = str(role["id"])
            try:
                member_ids = await self._members_of(role_id)
            except (EntityFailed, ApiError) as exc:
                logger.error("Could not list members of OneLogin role %s: %s", role_id, describe(exc))
                yield SourceGroup(
                    source_id=role_id,
                    name=role.get("name") or role_id,
                    discovery_error=f"member listing failed: {describe(exc)}",
                )
                continue
            yield SourceGroup(source_id=role_id, name=role.get("name") or role_id, member_ids=member_ids)

    async def list_users(self) -> AsyncIterator[SourceUser]:
        async for user in self._paginate(self.endpoints["users"]["list"], label="onelogin users"):
            user_id = str(user["id"])
            username = user.get("username") or user.get("email") or user_id
            full_name = f"{user.get('firstname') or ''} {user.get('lastname') or ''}".strip()
            yield SourceUser(
                source_id=user_id,
                username=username,
                email=user.get("email"),
                display_name=full_name or username,
            )

    async def list_assignments(self, application_id: str) -> AsyncIterator[SourceAssignment]:
        covered = set()
        for role_id in await self._linked_roles(application_id):
            yield SourceAssignment(application_id, PrincipalRef(GROUP, role_id))
            covered |= await self._members_of(role_id)

        users_path = self.endpoints["application_users"]["list"].format(id=application_id)
        async for user in self._paginate(users_path, label=f"onelogin app {application_id} users"):
            user_id = str(user["id"])
            if user_id in covered:
                continue
            yield SourceAssignment(application_id, PrincipalRef(USER, user_id))
