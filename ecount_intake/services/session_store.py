"""Session cache keyed by (company_code, user_id)."""

from typing import Optional, Protocol

from ..models import ErpSession


class SessionStore(Protocol):
    """Narrow interface over any session persistence."""

    async def get(self, company_code: str, user_id: str) -> Optional[ErpSession]: ...

    async def put(self, session: ErpSession) -> None: ...

    async def delete(self, company_code: str, user_id: str) -> None: ...


class InMemorySessionStore:
    """Process-wide dict store. Counts writes so tests can assert on them."""

    def __init__(self):
        self._sessions: dict[tuple[str, str], ErpSession] = {}
        self.writes = 0

    async def get(self, company_code: str, user_id: str) -> Optional[ErpSession]:
        return self._sessions.get((company_code, user_id))

    async def put(self, session: ErpSession) -> None:
        self.writes += 1
        self._sessions[(session.company_code, session.user_id)] = session

    async def delete(self, company_code: str, user_id: str) -> None:
        self._sessions.pop((company_code, user_id), None)
