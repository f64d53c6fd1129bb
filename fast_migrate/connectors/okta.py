"""Okta source connector."""
from __future__ import annotations

import logging
from functools import partial
from typing import Any, AsyncIterator, Dict, FrozenSet, Optional, Set
from urllib.parse import parse_qs, urlparse

from identity_common.endpoints import get_okta_endpoints

from ..api_client import ApiClient
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

logger = logging.getLogger("fast_migrate.connectors.okta")

# Okta's own dashboard and plugin apps; they have no login URL worth preserving.
OKTA_FIRST_PARTY_APPS = frozenset({"saasure", "okta_enduser", "okta_browser_plugin", "okta_flow_sso"})


class OktaConnector:
    PROVIDER_NAME = "okta"

    def __init__(self, client, executor, page_size: int = 200):
        self.client = client
        self.executor = executor
        self.page_size = page_size
        self.endpoints = get_okta_endpoints()
        self._built_in_groups: Set[str] = set()
        self._group_members: Dict[str, FrozenSet[str]] = {}

    async def verify(self) -> None:
        await self.executor.submit(
            partial(self.client.get, self.endpoints["verify"]["list"]), label="okta verify"
        )

    async def _paginate(
        self, path: str, params: Optional[Dict[str, Any]] = None, label: str = ""
    ) -> AsyncIterator[Dict[str, Any]]:
        """Yield items page by page, following the Link rel="next" cursor."""
        params = dict(params or {})
        params.setdefault("limit", self.page_size)
        after: Optional[str] = None
        page = 0

        while True:
            query = dict(params)
            if after:
                query["after"] = after
            page += 1
            payload, headers = await self.executor.submit(
                partial(self.client.get, path, query), label=f"{label or path} page {page}"
            )
            items = payload if isinstance(payload, list) else []
            logger.debug("Page %d of %s: %d items", page, path, len(items))
            for item in items:
                yield item

            next_url = ApiClient.next_link(headers or {})
            if not next_url or not items:
                break
            after = parse_qs(urlparse(next_url).query).get("after", [None])[0]
            if not after:
                break

    def _to_application(self, app: Dict[str, Any]) -> SourceApplication:
        links = app.get("_links") or {}
        app_links = links.get("appLinks") or []
        login_url = app_links[0].get("href") if app_links else None
        if not login_url:
            login_url = f"{self.client.base_url}/home/{app.get('name', 'app')}/{app['id']}"
        logos = links.get("logo") or []
        return SourceApplication(
            source_id=app["id"],
            name=app.get("label") or app.get("name") or app["id"],
            protocol=app.get("signOnMode", "UNKNOWN"),
            login_url=login_url,
            icon_url=logos[0].get("href") if logos else None,
        )

    async def list_applications(self) -> AsyncIterator[SourceApplication]:
        definition = self.endpoints["applications"]
        async for app in self._paginate(definition["list"], {"filter": definition["filter"]}, label="okta apps"):
            if app.get("name") in OKTA_FIRST_PARTY_APPS:
                logger.debug("Skipping first-party Okta app %s", app.get("name"))
                continue
            yield self._to_application(app)

    async def list_groups(self) -> AsyncIterator[SourceGroup]:
        """Groups with their members; BUILT_IN groups such as Everyone are left out.

        A group whose member listing fails is still yielded, carrying the
        failure in discovery_error.
        """
        definition = self.endpoints["groups"]
        async for group in self._paginate(definition["list"], label="okta groups"):
            group_id = group["id"]
            if group.get("type") == "BUILT_IN":
                self._built_in_groups.add(group_id)
                continue
            members_path = definition["members"].format(id=group_id)
            member_ids: FrozenSet[str] = frozenset()
            discovery_error = None
            try:
                member_ids = frozenset([
                    member["id"]
                    async for member in self._paginate(members_path, label=f"okta group {group_id} members")
                ])
                self._group_members[group_id] = member_ids
            except (EntityFailed, ApiError) as exc:
                logger.error("Could not list members of Okta group %s: %s", group_id, describe(exc))
                discovery_error = f"member listing failed: {describe(exc)}"
            profile = group.get("profile") or {}
            yield SourceGroup(
                source_id=group_id,
                name=profile.get("name") or group_id,
                description=profile.get("description") or "",
                member_ids=member_ids,
                discovery_error=discovery_error,
            )

    async def list_users(self) -> AsyncIterator[SourceUser]:
        async for user in self._paginate(self.endpoints["users"]["list"], label="okta users"):
            profile = user.get("profile") or {}
            login = profile.get("login") or profile.get("email") or user["id"]
            full_name = f"{profile.get('firstName') or ''} {profile.get('lastName') or ''}".strip()
            yield SourceUser(
                source_id=user["id"],
                username=login,
                email=profile.get("email"),
                display_name=full_name or login,
            )

    async def list_assignments(self, application_id: str) -> AsyncIterator[SourceAssignment]:
        """Group assignments, then users assigned directly (scope USER).

        Users with scope GROUP inherit access from a group assignment and are
        not emitted a second time. Grants to BUILT_IN groups are not
        replicated as group grants; instead every scope GROUP user not covered
        by one of the app's other groups becomes a direct user assignment.
        Relies on list_groups having run to know the BUILT_IN ids.
        """
        groups_path = self.endpoints["application_groups"]["list"].format(id=application_id)
        covered = set()
        expand_inherited = False
        async for group in self._paginate(groups_path, label=f"okta app {application_id} groups"):
            group_id = group["id"]
            if group_id in self._built_in_groups:
                logger.info("App %s: grant to built-in group %s replaced by direct user grants",
                            application_id, group_id)
                expand_inherited = True
                continue
            covered |= self._group_members.get(group_id, frozenset())
            yield SourceAssignment(application_id, PrincipalRef(GROUP, group_id))

        users_path = self.endpoints["application_users"]["list"].format(id=application_id)
        async for user in self._paginate(users_path, label=f"okta app {application_id} users"):
            direct = str(user.get("scope", "USER")).upper() == "USER"
            if direct or (expand_inherited and user["id"] not in covered):
                yield SourceAssignment(application_id, PrincipalRef(USER, user["id"]))
