from typing import Protocol, List, Optional, Sequence, runtime_checkable
from datetime import datetime
from app.models.invite import InviteLink
from app.schemas.invite import InviteSpec

@runtime_checkable
class InviteRepository(Protocol):
    async def create(self, spec: InviteSpec, token_hash: str, now: Optional[datetime] = None) -> InviteLink:
        ...

    async def find_by_hash(self, token_hash: str, refresh: bool = False) -> Optional[InviteLink]:
        ...

    async def find_by_id(self, invite_id: str, refresh: bool = False) -> Optional[InviteLink]:
        ...

    async def list_recent(self, limit: int = 50) -> List[InviteLink]:
        ...

    async def existing_ids(self, ids: Sequence[str]) -> List[str]:
        ...

    async def revoke(self, invite_id: str) -> bool:
        ...

    async def revoke_many(self, ids: Sequence[str]) -> int:
        ...

    async def delete_many(self, ids: Sequence[str]) -> int:
        ...

    async def try_consume(self, invite_id: str, expected_max_uses: int, now: datetime, reservation_id: str) -> bool:
        ...

@runtime_checkable
class MailTransport(Protocol):
    async def deliver(self, to: List[str], subject: str, html: str) -> None:
        ...
