"""Pure mapping from normalized source entities to target creation requests.

Nothing here performs I/O; map_assignment only reads the ledger.
"""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Union

from .models import (
    APPLICATION,
    ASSIGNED,
    ASSIGNMENT,
    CREATED,
    FAILED,
    GROUP,
    USER,
    Skip,
    SourceApplication,
    SourceAssignment,
    SourceGroup,
    SourceUser,
    TargetAppTileRequest,
    TargetAssignmentRequest,
    TargetGroupRequest,
    TargetIdentityRequest,
)

# Statuses that mean the target resource exists.
_USABLE = (CREATED, ASSIGNED)


def _name_key(name: str) -> str:
    return " ".join(name.split()).casefold()


def disambiguate_names(entities: Iterable[Union[SourceApplication, SourceGroup]]) -> Dict[str, str]:
    """Map source id to target display name.

    Every entity whose name collides (case-insensitively, ignoring extra
    whitespace) with another one is suffixed with its source id, so the result
    does not depend on discovery order.
    """
    entities = list(entities)
    counts = Counter(_name_key(e.name) for e in entities)
    names: Dict[str, str] = {}
    for entity in entities:
        name = " ".join(entity.name.split()) or entity.source_id
        if counts[_name_key(entity.name)] > 1:
            name = f"{name} ({entity.source_id})"
        names[entity.source_id] = name
    return names


def map_application(app: SourceApplication, display_names: Dict[str, str]) -> TargetAppTileRequest:
    return TargetAppTileRequest(
        display_name=display_names.get(app.source_id, app.name),
        login_link=app.login_url,
        icon_url=app.icon_url,
    )


def map_group(group: SourceGroup, display_names: Dict[str, str]) -> TargetGroupRequest:
    return TargetGroupRequest(
        display_name=display_names.get(group.source_id, group.name),
        description=group.description or "",
    )


def map_user(user: SourceUser) -> TargetIdentityRequest:
    return TargetIdentityRequest(
        display_name=user.display_name or user.username,
        username=user.username,
        email=user.email,
    )


def map_assignment(assignment: SourceAssignment, ledger) -> Union[TargetAssignmentRequest, Skip]:
    """Resolve both ends of an assignment to target ids through the ledger."""
    done = ledger.lookup(ASSIGNMENT, assignment.ledger_id)
    if done is not None and done.status == ASSIGNED:
        return Skip("already assigned")

    tile = ledger.lookup(APPLICATION, assignment.application_id)
    if tile is None or tile.status not in _USABLE or not tile.target_id:
        return Skip(f"application {assignment.application_id} has no created tile", dependency_failed=True)

    principal = assignment.principal
    if principal.kind not in (USER, GROUP):
        return Skip(f"unsupported principal kind {principal.kind}")

    entry = ledger.lookup(principal.kind, principal.source_id)
    if entry is None:
        return Skip(f"{principal.kind} {principal.source_id} was not migrated", dependency_failed=True)
    if entry.status == FAILED:
        return Skip(f"{principal.kind} {principal.source_id} failed to migrate", dependency_failed=True)
    if entry.status not in _USABLE or not entry.target_id:
        return Skip(f"{principal.kind} {principal.source_id} was not migrated", dependency_failed=True)

    return TargetAssignmentRequest(
        tile_id=tile.target_id,
        principal_kind=principal.kind,
        target_principal_id=entry.target_id,
    )
