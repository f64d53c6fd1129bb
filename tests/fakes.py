"""In-memory stand-ins for the source connectors, source HTTP clients and the target client."""
import asyncio
import itertools
from typing import Any, Dict, List

from fast_migrate.executor import RateLimitedExecutor
from fast_migrate.models import (
    GROUP,
    USER,
    PrincipalRef,
    SourceApplication,
    SourceAssignment,
    SourceGroup,
    SourceUser,
)


async def no_sleep(_delay):
    return None


def make_executor(max_workers=4, max_attempts=3, sleep=no_sleep):
    return RateLimitedExecutor(
        max_workers=max_workers,
        rate_limit_per_minute=0,
        max_attempts=max_attempts,
        jitter=0,
        sleep=sleep,
    )


def app(source_id, name=None, *refs):
    return SourceApplication(
        source_id=source_id,
        name=name or source_id,
        protocol="SAML_2_0",
        login_url=f"https://source.example.com/home/{source_id}",
        assignment_refs=tuple(refs),
    )


def group(source_id, name=None, members=()):
    return SourceGroup(source_id=source_id, name=name or source_id, member_ids=frozenset(members))


def user(source_id, email=None):
    email = email or f"{source_id.lower()}@example.com"
    return SourceUser(source_id=source_id, username=email, email=email, display_name=source_id)


def to_group(app_id, group_id):
    return SourceAssignment(app_id, PrincipalRef(GROUP, group_id))


def to_user(app_id, user_id):
    return SourceAssignment(app_id, PrincipalRef(USER, user_id))


class FakeConnector:
    """Serves fixed discovery results; assignment errors can be injected per application."""

    PROVIDER_NAME = "okta"

    def __init__(self, applications=(), groups=(), users=(), assignments=None, assignment_errors=None,
                 verify_error=None, discovery_error=None):
        self.applications = list(applications)
        self.groups = list(groups)
        self.users = list(users)
        self.assignments: Dict[str, List[SourceAssignment]] = assignments or {}
        self.assignment_errors: Dict[str, Exception] = assignment_errors or {}
        self.verify_error = verify_error
        self.discovery_error = discovery_error
        self.assignment_listings: List[str] = []

    async def verify(self):
        if self.verify_error:
            raise self.verify_error

    async def list_applications(self):
        for item in self.applications:
            await asyncio.sleep(0)
            yield item

    async def list_groups(self):
        if self.discovery_error:
            raise self.discovery_error
        for item in self.groups:
            await asyncio.sleep(0)
            yield item

    async def list_users(self):
        for item in self.users:
            await asyncio.sleep(0)
            yield item

    async def list_assignments(self, application_id):
        self.assignment_listings.append(application_id)
        for item in self.assignments.get(application_id, []):
            await asyncio.sleep(0)
            yield item
        if application_id in self.assignment_errors:
            raise self.assignment_errors[application_id]


class FakeTarget:
    """Target client that keeps created resources in dicts.

    errors maps a method name to a callable taking the call's first argument
    and returning an exception to raise, or None to let the call through.
    When max_in_flight is set, a call made while that many are already
    running is counted as rejected.
    """

    realm_id = "realm-1"

    def __init__(self, identities=None, errors=None, max_in_flight=None):
        self.identities: Dict[str, Dict[str, Any]] = {i["id"]: i for i in identities or []}
        self.groups: Dict[str, Dict[str, Any]] = {}
        self.members: Dict[str, List[str]] = {}
        self.tiles: Dict[str, Dict[str, Any]] = {}
        self.tile_identities: Dict[str, List[str]] = {}
        self.tile_groups: Dict[str, List[str]] = {}
        self.errors = errors or {}
        self.max_in_flight = max_in_flight
        self.in_flight = 0
        self.rejections = 0
        self.calls: List[tuple] = []
        self._ids = itertools.count(1)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def _call(self, method, arg=None):
        self.calls.append((method, arg))
        self.in_flight += 1
        try:
            if self.max_in_flight is not None and self.in_flight > self.max_in_flight:
                self.rejections += 1
            await asyncio.sleep(0)
            error_for = self.errors.get(method)
            error = error_for(arg) if error_for else None
            if error is not None:
                raise error
        finally:
            self.in_flight -= 1

    def _new_id(self, prefix):
        return f"{prefix}-{next(self._ids)}"

    def calls_to(self, method):
        return [arg for name, arg in self.calls if name == method]

    async def verify(self):
        await self._call("verify")
        return {"id": self.realm_id}

    async def list_identities(self, page_token=None):
        await self._call("list_identities", page_token)
        return list(self.identities.values()), None

    async def create_identity(self, request):
        await self._call("create_identity", request)
        identity_id = self._new_id("idn")
        self.identities[identity_id] = {
            "id": identity_id,
            "display_name": request.display_name,
            "traits": {"primary_email_address": request.email},
        }
        return identity_id

    async def create_group(self, request):
        await self._call("create_group", request)
        group_id = self._new_id("grp")
        self.groups[group_id] = {"id": group_id, "display_name": request.display_name}
        return group_id

    async def add_group_members(self, group_id, identity_ids):
        await self._call("add_group_members", group_id)
        self.members.setdefault(group_id, []).extend(identity_ids)

    async def create_sso_config(self, request):
        await self._call("create_sso_config", request)
        tile_id = self._new_id("tile")
        self.tiles[tile_id] = {"id": tile_id, "display_name": request.display_name, "login_link": request.login_link}
        return tile_id

    async def assign(self, request):
        await self._call("assign", request)
        if request.principal_kind == GROUP:
            self.tile_groups.setdefault(request.tile_id, []).append(request.target_principal_id)
        else:
            self.tile_identities.setdefault(request.tile_id, []).append(request.target_principal_id)


class FakeSourceClient:
    """Answers GETs from a route table of pages.

    routes maps a path to a list of pages. Okta style clients advertise the
    next page in a Link header, OneLogin style clients in After-Cursor.
    failures maps a path to the exception every GET of it raises.
    """

    def __init__(self, routes, base_url="https://source.example.com", cursor_style="link", failures=None):
        self.routes = routes
        self.failures = failures or {}
        self.base_url = base_url
        self.cursor_style = cursor_style
        self.requests: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def get(self, path, params=None):
        params = dict(params or {})
        self.requests.append((path, params))
        if path in self.failures:
            raise self.failures[path]
        pages = self.routes.get(path)
        if pages is None:
            return [], {}
        if not isinstance(pages, list):
            return pages, {}
        cursor = params.get("after") if self.cursor_style == "link" else params.get("cursor")
        index = int(cursor) if cursor else 0
        headers = {}
        if index + 1 < len(pages):
            if self.cursor_style == "link":
                headers["Link"] = (
                    f'<{self.base_url}{path}?limit=200>; rel="self", '
                    f'<{self.base_url}{path}?limit=200&after={index + 1}>; rel="next"'
                )
            else:
                headers["After-Cursor"] = str(index + 1)
        return pages[index], headers


def okta_routes():
    """Two apps (AppA granted to group G1, AppB granted to user U1); G1 has member U1."""
    app_a = {
        "id": "0oaA",
        "name": "appa",
        "label": "AppA",
        "signOnMode": "SAML_2_0",
        "_links": {"appLinks": [{"href": "https://source.example.com/home/appa/0oaA/aln1"}]},
    }
    app_b = {"id": "0oaB", "name": "appb", "label": "AppB", "signOnMode": "OPENID_CONNECT", "_links": {}}
    dashboard = {"id": "0oaD", "name": "saasure", "label": "Okta Dashboard", "_links": {}}
    return {
        "/api/v1/org": {"id": "org"},
        "/api/v1/apps": [[app_a, dashboard], [app_b]],
        "/api/v1/groups": [[
            {"id": "00gEveryone", "type": "BUILT_IN", "profile": {"name": "Everyone"}},
            {"id": "00gG1", "type": "OKTA_GROUP", "profile": {"name": "G1", "description": "first group"}},
        ]],
        "/api/v1/groups/00gG1/users": [[{"id": "00uU1"}]],
        "/api/v1/users": [[{
            "id": "00uU1",
            "profile": {"login": "u1@example.com", "email": "u1@example.com", "firstName": "User", "lastName": "One"},
        }]],
        "/api/v1/apps/0oaA/groups": [[{"id": "00gG1"}]],
        "/api/v1/apps/0oaA/users": [[{"id": "00uU1", "scope": "GROUP"}]],
        "/api/v1/apps/0oaB/groups": [[]],
        "/api/v1/apps/0oaB/users": [[{"id": "00uU1", "scope": "USER"}]],
    }
