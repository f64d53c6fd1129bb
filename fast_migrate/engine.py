"""Reconciliation engine: discovery, ledger lookup, create-or-skip, assignment replication."""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional

from identity_common.endpoints import get_onelogin_endpoints

from .api_client import ApiClient
from .config import MigrationSettings, load_migration_settings
from .connectors import CONNECTORS
from .errors import (
    ApiError,
    AuthenticationFailure,
    DependencyFailed,
    EntityFailed,
    ExecutorClosed,
    SourceUnavailable,
    ValidationError,
    describe,
)
from .executor import RateLimitedExecutor
from .ledger import JournalLedger, Ledger
from .mapper import disambiguate_names, map_application, map_assignment, map_group, map_user
from .models import (
    APPLICATION,
    ASSIGNED,
    ASSIGNMENT,
    CREATED,
    GROUP,
    USER,
    DiscoveryResult,
    Skip,
    SourceApplication,
    SourceAssignment,
    SourceGroup,
    SourceUser,
    link_memberships,
)
from . import summary as outcome
from .summary import MigrationSummary
from .target_client import TargetClient

logger = logging.getLogger("fast_migrate.engine")

ClientFactory = Callable[[MigrationSettings], Any]

# Failures that stay with one entity; everything else ends the run.
ENTITY_ERRORS = (EntityFailed, ApiError, DependencyFailed)
_USABLE = (CREATED, ASSIGNED)


class ReconciliationEngine:
    """Drives one migration run against a source connector and the target client.

    Phases run in dependency order: users, groups, then applications with
    their assignments. Within a phase entities are independent and proceed
    concurrently through the executor.
    """

    def __init__(self, connector, target: TargetClient, ledger: Ledger, executor: RateLimitedExecutor):
        self.connector = connector
        self.target = target
        self.ledger = ledger
        self.executor = executor
        self.provider = connector.PROVIDER_NAME
        self.summary = MigrationSummary(self.provider)

    async def run(self) -> MigrationSummary:
        try:
            await self.verify()
            discovery = await self.discover()
            await self.migrate_users(discovery.users)
            await self.migrate_groups(discovery.groups)
            await self.migrate_applications(discovery.applications)
        except Exception:
            self.executor.shutdown()
            raise
        return self.summary

    async def verify(self):
        """One authenticated call against each side before any work starts."""
        try:
            await self.connector.verify()
            await self.executor.submit(self.target.verify, label="target verify")
        except (EntityFailed, ApiError) as exc:
            raise SourceUnavailable(f"verification failed: {describe(exc)}") from exc
        logger.info("Verified %s source and target realm %s", self.provider, self.target.realm_id)

    async def discover(self) -> DiscoveryResult:
        """Collect apps, groups and users concurrently.

        A failed top-level list page ends the run. Connectors report failures
        of per-entity lookups on the entity itself (discovery_error).
        """
        logger.info("START: discovery from %s", self.provider)
        results = await asyncio.gather(
            self._collect(self.connector.list_applications()),
            self._collect(self.connector.list_groups()),
            self._collect(self.connector.list_users()),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            exc = _root_cause(errors)
            if isinstance(exc, ENTITY_ERRORS):
                raise SourceUnavailable(f"discovery failed: {describe(exc)}") from exc
            raise exc

        applications, groups, users = results
        discovery = DiscoveryResult(
            applications=applications,
            groups=groups,
            users=link_memberships(groups, users),
        )
        logger.info(
            "DONE: discovered %d applications, %d groups, %d users",
            len(discovery.applications), len(discovery.groups), len(discovery.users),
        )
        return discovery

    @staticmethod
    async def _collect(sequence: AsyncIterator[Any]) -> List[Any]:
        return [item async for item in sequence]

    async def _run_isolated(self, coros: Iterable[Awaitable[Any]]) -> List[Any]:
        """Run per-entity coroutines together; re-raise the first run-ending error."""
        results = await asyncio.gather(*(self._fatal_stops_executor(c) for c in coros), return_exceptions=True)
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise _root_cause(errors)
        return results

    async def _fatal_stops_executor(self, coro: Awaitable[Any]) -> Any:
        try:
            return await coro
        except ExecutorClosed:
            raise
        except Exception:
            self.executor.shutdown()
            raise

    def _fail(self, kind: str, source_id: str, exc: BaseException) -> None:
        self._record_failure(kind, source_id, describe(exc))

    def _record_failure(self, kind: str, source_id: str, reason: str) -> None:
        logger.error("FAIL: %s %s: %s", kind, source_id, reason)
        self.ledger.record_failed(kind, source_id, reason)
        self.summary.record(kind, outcome.FAILED, source_id, reason)

    def _fail_application(self, source_id: str, reason: str) -> None:
        entry = self.ledger.lookup(APPLICATION, source_id)
        if entry is not None and entry.status == ASSIGNED:
            # keeps its ledger state; only this run's report shows the failure
            logger.error("FAIL: %s %s: %s", APPLICATION, source_id, reason)
            self.summary.record(APPLICATION, outcome.FAILED, source_id, reason)
        else:
            self._record_failure(APPLICATION, source_id, reason)

    # users

    async def migrate_users(self, users: List[SourceUser]):
        todo = []
        for user in users:
            if self._already_done(USER, user.source_id):
                self.summary.record(USER, outcome.SKIPPED, user.source_id)
            else:
                todo.append(user)
        if not todo:
            return
        logger.info("START: %d users (%d already migrated)", len(todo), len(users) - len(todo))
        by_email = await self._existing_identities() if any(u.email for u in todo) else {}
        await self._run_isolated(self._migrate_user(u, by_email) for u in todo)

    async def _existing_identities(self) -> Dict[str, str]:
        """Target identity ids keyed by lower-cased primary email."""
        by_email: Dict[str, str] = {}
        page_token: Optional[str] = None
        page = 0
        try:
            while True:
                page += 1
                identities, page_token = await self.executor.submit(
                    partial(self.target.list_identities, page_token), label=f"target identities page {page}"
                )
                for identity in identities:
                    email = (identity.get("traits") or {}).get("primary_email_address")
                    if email and identity.get("id"):
                        by_email.setdefault(email.casefold(), str(identity["id"]))
                if not page_token:
                    break
        except (EntityFailed, ApiError) as exc:
            raise SourceUnavailable(f"listing target identities failed: {describe(exc)}") from exc
        logger.debug("Found %d existing target identities with an email", len(by_email))
        return by_email

    async def _migrate_user(self, user: SourceUser, by_email: Dict[str, str]):
        entry = self.ledger.lookup(USER, user.source_id)
        self.ledger.record_pending(USER, user.source_id)
        target_id = entry.target_id if entry else None
        matched = target_id is not None
        if target_id is None and user.email:
            target_id = by_email.get(user.email.casefold())
            matched = target_id is not None
        if matched:
            logger.info("Correlated user %s with existing identity %s", user.username, target_id)
        else:
            try:
                target_id = await self.executor.submit(
                    partial(self.target.create_identity, map_user(user)), label=f"create identity {user.username}"
                )
            except ENTITY_ERRORS as exc:
                self._fail(USER, user.source_id, exc)
                return
        self.ledger.record_created(USER, user.source_id, target_id)
        self.summary.record(USER, outcome.SKIPPED if matched else outcome.CREATED, user.source_id)

    # groups

    async def migrate_groups(self, groups: List[SourceGroup]):
        names = disambiguate_names(groups)
        todo = []
        for group in groups:
            if self._already_done(GROUP, group.source_id):
                self.summary.record(GROUP, outcome.SKIPPED, group.source_id)
            elif group.discovery_error:
                self._record_failure(GROUP, group.source_id, group.discovery_error)
            else:
                todo.append(group)
        if todo:
            logger.info("START: %d groups (%d already migrated)", len(todo), len(groups) - len(todo))
            await self._run_isolated(self._migrate_group(g, names) for g in todo)

    async def _migrate_group(self, group: SourceGroup, names: Dict[str, str]):
        entry = self.ledger.lookup(GROUP, group.source_id)
        self.ledger.record_pending(GROUP, group.source_id)
        target_id = entry.target_id if entry else None
        reused = target_id is not None
        try:
            if target_id is None:
                target_id = await self.executor.submit(
                    partial(self.target.create_group, map_group(group, names)),
                    label=f"create group {names[group.source_id]}",
                )
                # remembered before members are added so a rerun reuses the group
                self.ledger.record_pending(GROUP, group.source_id, target_id=target_id)
            member_ids = self._member_target_ids(group)
            if member_ids:
                await self.executor.submit(
                    partial(self.target.add_group_members, target_id, member_ids),
                    label=f"add {len(member_ids)} members to group {group.source_id}",
                )
        except ENTITY_ERRORS as exc:
            self._fail(GROUP, group.source_id, exc)
            return
        self.ledger.record_created(GROUP, group.source_id, target_id)
        self.summary.record(GROUP, outcome.SKIPPED if reused else outcome.CREATED, group.source_id)
        logger.info("DONE: group %s -> %s", group.source_id, target_id)

    def _member_target_ids(self, group: SourceGroup) -> List[str]:
        member_ids = []
        for user_id in sorted(group.member_ids):
            entry = self.ledger.lookup(USER, user_id)
            if entry is None or entry.status not in _USABLE or not entry.target_id:
                logger.warning("Group %s: member %s has no migrated identity", group.source_id, user_id)
                continue
            member_ids.append(entry.target_id)
        return member_ids

    # applications

    async def migrate_applications(self, applications: List[SourceApplication]):
        names = disambiguate_names(applications)
        logger.info("START: %d applications", len(applications))
        await self._run_isolated(self._migrate_application(app, names) for app in applications)

    async def _migrate_application(self, app: SourceApplication, names: Dict[str, str]):
        if app.discovery_error:
            self._fail_application(app.source_id, app.discovery_error)
            return
        entry = self.ledger.lookup(APPLICATION, app.source_id)
        if entry is not None and entry.status in _USABLE:
            tile_outcome = outcome.SKIPPED
        elif entry is not None and entry.target_id:
            # the tile exists; an earlier run failed while replicating its assignments
            self.ledger.record_pending(APPLICATION, app.source_id)
            self.ledger.record_created(APPLICATION, app.source_id, entry.target_id)
            tile_outcome = outcome.SKIPPED
        else:
            self.ledger.record_pending(APPLICATION, app.source_id)
            try:
                tile_id = await self.executor.submit(
                    partial(self.target.create_sso_config, map_application(app, names)),
                    label=f"create tile {names[app.source_id]}",
                )
            except ENTITY_ERRORS as exc:
                self._fail(APPLICATION, app.source_id, exc)
                return
            self.ledger.record_created(APPLICATION, app.source_id, tile_id)
            tile_outcome = outcome.CREATED
            logger.info("Created tile for %s (%s) -> %s", names[app.source_id], app.protocol, tile_id)

        try:
            all_assigned = await self._replicate_assignments(app)
        except ENTITY_ERRORS as exc:
            self._fail_application(app.source_id, f"assignment discovery failed: {describe(exc)}")
            return

        if all_assigned and self.ledger.lookup(APPLICATION, app.source_id).status != ASSIGNED:
            self.ledger.record_assigned(APPLICATION, app.source_id)
        self.summary.record(APPLICATION, tile_outcome, app.source_id)
        logger.info("DONE: application %s (assignments complete: %s)", app.source_id, all_assigned)

    async def _replicate_assignments(self, app: SourceApplication) -> bool:
        """Stream the app's assignments into the executor; True when all are assigned.

        An assignment listing error is raised after the already started
        assignments have finished.
        """
        tasks: List[asyncio.Future] = []
        seen = set()
        listing_error: Optional[BaseException] = None
        try:
            async for assignment in self.connector.list_assignments(app.source_id):
                if assignment.ledger_id in seen:
                    continue
                seen.add(assignment.ledger_id)
                tasks.append(asyncio.ensure_future(self._replicate_assignment(assignment)))
        except ENTITY_ERRORS as exc:
            listing_error = exc
        finally:
            results = await asyncio.gather(*tasks, return_exceptions=True)

        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise _root_cause(errors)
        if listing_error is not None:
            raise listing_error
        return all(results)

    async def _replicate_assignment(self, assignment: SourceAssignment) -> bool:
        key = assignment.ledger_id
        request = map_assignment(assignment, self.ledger)
        if isinstance(request, Skip):
            if request.dependency_failed:
                self._fail(ASSIGNMENT, key, DependencyFailed(request.reason))
                return False
            logger.debug("Skipping assignment %s: %s", key, request.reason)
            self.summary.record(ASSIGNMENT, outcome.SKIPPED, key)
            return True

        self.ledger.record_pending(ASSIGNMENT, key)
        try:
            await self.executor.submit(partial(self.target.assign, request), label=f"assign {key}")
        except ValidationError as exc:
            if exc.status != 409:
                self._fail(ASSIGNMENT, key, exc)
                return False
            logger.debug("Assignment %s already present in target", key)
        except ENTITY_ERRORS as exc:
            self._fail(ASSIGNMENT, key, exc)
            return False
        self.ledger.record_assigned(ASSIGNMENT, key)
        self.summary.record(ASSIGNMENT, outcome.CREATED, key)
        return True

    def _already_done(self, kind: str, source_id: str) -> bool:
        entry = self.ledger.lookup(kind, source_id)
        return entry is not None and entry.status in _USABLE


def _root_cause(errors: List[BaseException]) -> BaseException:
    """Pick the error that ended the run rather than the ExecutorClosed it caused."""
    for preferred in (AuthenticationFailure, SourceUnavailable):
        for exc in errors:
            if isinstance(exc, preferred):
                return exc
    for exc in errors:
        if not isinstance(exc, ExecutorClosed):
            return exc
    return errors[0]


def _default_source_client(settings: MigrationSettings) -> ApiClient:
    source = settings.source
    if settings.provider == "okta":
        return ApiClient(source.base_url, settings.config_loader, api_token=source.api_token)
    return ApiClient(
        source.base_url,
        settings.config_loader,
        client_id=source.client_id,
        client_secret=source.client_secret,
        token_path=get_onelogin_endpoints()["token"]["create"],
    )


def _default_target_client(settings: MigrationSettings) -> TargetClient:
    target = settings.target
    client = ApiClient(target.base_url, settings.config_loader, bearer_token=target.api_token)
    return TargetClient(client, target.tenant_id, target.realm_id, page_size=settings.page_size)


async def run_migration_async(
    settings: MigrationSettings,
    source_client_factory: ClientFactory = _default_source_client,
    target_client_factory: ClientFactory = _default_target_client,
    ledger: Optional[Ledger] = None,
    executor: Optional[RateLimitedExecutor] = None,
) -> MigrationSummary:
    ledger = ledger if ledger is not None else JournalLedger(settings.ledger_file, settings.provider)
    executor = executor or RateLimitedExecutor.from_config(settings.config_loader)
    connector_cls = CONNECTORS[settings.provider]
    logger.info("Fast-migrate from %s into realm %s (ledger %s)",
                settings.provider, settings.target.realm_id, getattr(ledger, "path", "in memory"))

    async with source_client_factory(settings) as source_client, target_client_factory(settings) as target:
        async with executor:
            connector = connector_cls(source_client, executor, page_size=settings.page_size)
            engine = ReconciliationEngine(connector, target, ledger, executor)
            return await engine.run()


def run_fast_migrate(
    provider: str,
    config_file: Optional[str] = None,
    credentials_file: Optional[str] = None,
    tenant_id: Optional[int] = None,
    source_client_factory: ClientFactory = _default_source_client,
    target_client_factory: ClientFactory = _default_target_client,
    ledger: Optional[Ledger] = None,
    settings: Optional[MigrationSettings] = None,
) -> MigrationSummary:
    settings = settings or load_migration_settings(
        provider,
        config_file=config_file,
        credentials_file=credentials_file,
        tenant_id=tenant_id,
    )
    return asyncio.run(
        run_migration_async(
            settings,
            source_client_factory=source_client_factory,
            target_client_factory=target_client_factory,
            ledger=ledger,
        )
    )
