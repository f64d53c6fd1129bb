"""Capability set every source identity provider connector implements."""
from __future__ import annotations

from typing import AsyncIterator, Protocol

from ..models import SourceApplication, SourceAssignment, SourceGroup, SourceUser


class SourceConnector(Protocol):
    """Paginated discovery over one source IdP.

    Each list_* call starts again at page 1 and yields items as pages arrive.
    Every page fetch is a single call submitted through the executor.
    """

    PROVIDER_NAME: str

    async def verify(self) -> None:
        """One authenticated call; raises AuthenticationFailure on bad credentials."""
        ...

    def list_applications(self) -> AsyncIterator[SourceApplication]:
        ...

    def list_groups(self) -> AsyncIterator[SourceGroup]:
        ...

    def list_users(self) -> AsyncIterator[SourceUser]:
        ...

    def list_assignments(self, application_id: str) -> AsyncIterator[SourceAssignment]:
        ...
