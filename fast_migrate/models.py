"""Normalized source entities, target creation requests and ledger entries."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

# Ledger source kinds
APPLICATION = "application"
GROUP = "group"
USER = "user"
ASSIGNMENT = "assignment"

ENTITY_KINDS = (APPLICATION, GROUP, USER, ASSIGNMENT)

# Ledger statuses
PENDING = "pending"
CREATED = "created"
ASSIGNED = "assigned"
FAILED = "failed"

STATUSES = (PENDING, CREATED, ASSIGNED, FAILED)


@dataclass(frozen=True)
class PrincipalRef:
    kind: str  # USER or GROUP
    source_id: str


@dataclass(frozen=True)
class SourceApplication:
    """One source app as seen at discovery time.

    assignment_refs is snapshot data: the grants the source reports
    alongside the app. Replication always streams list_assignments instead.
    discovery_error is set when the app was listed but its details could
    not be fetched.
    """

    source_id: str
    name: str
    protocol: str
    login_url: str
    icon_url: Optional[str] = None
    assignment_refs: Tuple[PrincipalRef, ...] = ()
    discovery_error: Optional[str] = None


@dataclass(frozen=True)
class SourceGroup:
    """discovery_error is set when the group was listed but its members could not be."""

    source_id: str
    name: str
    description: str = ""
    member_ids: FrozenSet[str] = frozenset()
    discovery_error: Optional[str] = None


@dataclass(frozen=True)
class SourceUser:
    """group_ids is snapshot data derived from the groups' member lists; nothing is created from it."""

    source_id: str
    username: str
    email: Optional[str] = None
    display_name: str = ""
    group_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class SourceAssignment:
    application_id: str
    principal: PrincipalRef

    @property
    def ledger_id(self) -> str:
        return f"{self.application_id}/{self.principal.kind}/{self.principal.source_id}"


@dataclass(frozen=True)
class TargetGroupRequest:
    display_name: str
    description: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {"group": {"display_name": self.display_name, "description": self.description}}


@dataclass(frozen=True)
class TargetIdentityRequest:
    display_name: str
    username: str
    email: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        traits: Dict[str, Any] = {"type": "traits_v0", "username": self.username}
        if self.email:
            traits["primary_email_address"] = self.email
        return {"identity": {"display_name": self.display_name, "traits": traits}}


@dataclass(frozen=True)
class TargetAppTileRequest:
    """Opaque redirect tile: an SSO config that only forwards to login_link."""

    display_name: str
    login_link: str
    icon_url: Optional[str] = None
    is_migrated: bool = True

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": "bookmark", "login_link": self.login_link}
        if self.icon_url:
            payload["icon"] = self.icon_url
        return {
            "sso_config": {
                "display_name": self.display_name,
                "is_migrated": self.is_migrated,
                "payload": payload,
            }
        }


@dataclass(frozen=True)
class TargetAssignmentRequest:
    tile_id: str
    principal_kind: str
    target_principal_id: str


@dataclass(frozen=True)
class Skip:
    reason: str
    dependency_failed: bool = False


@dataclass(frozen=True)
class LedgerEntry:
    source_provider: str
    source_kind: str
    source_id: str
    status: str
    target_id: Optional[str] = None
    last_attempt_at: Optional[str] = None
    error_reason: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source_provider, self.source_kind, self.source_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_provider": self.source_provider,
            "source_kind": self.source_kind,
            "source_id": self.source_id,
            "status": self.status,
            "target_id": self.target_id,
            "last_attempt_at": self.last_attempt_at,
            "error_reason": self.error_reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        if data["status"] not in STATUSES:
            raise ValueError(f"Unknown ledger status: {data['status']!r}")
        return cls(
            source_provider=data["source_provider"],
            source_kind=data["source_kind"],
            source_id=str(data["source_id"]),
            status=data["status"],
            target_id=data.get("target_id"),
            last_attempt_at=data.get("last_attempt_at"),
            error_reason=data.get("error_reason"),
        )


def link_memberships(groups: Iterable[SourceGroup], users: Iterable[SourceUser]) -> List[SourceUser]:
    """Return users with group_ids filled in from the groups' member lists."""
    memberships: Dict[str, set] = {}
    for group in groups:
        for member_id in group.member_ids:
            memberships.setdefault(member_id, set()).add(group.source_id)
    return [
        replace(user, group_ids=frozenset(user.group_ids | memberships.get(user.source_id, set())))
        for user in users
    ]


@dataclass
class DiscoveryResult:
    applications: List[SourceApplication] = field(default_factory=list)
    groups: List[SourceGroup] = field(default_factory=list)
    users: List[SourceUser] = field(default_factory=list)
