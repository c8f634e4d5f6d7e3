"""
Contact Storage

Narrow CRUD port the reconciler consumes, with an in-memory implementation
for tests/local runs and a PostgreSQL implementation bound to one session.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Callable, Collection, Iterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager, contextmanager

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from reconciliation.config import get_settings
from reconciliation.db.client import get_db_session
from reconciliation.db.models import Contact
from reconciliation.kernel.errors import StoreError
from reconciliation.kernel.time import Clock, coerce_utc, utc_now
from .types import ContactRecord, LinkPrecedence

logger = structlog.get_logger()


class ContactStore(ABC):
    """
    Abstract base class for contact storage.

    Implementations assign ids (monotonically increasing) and timestamps on
    insert, and must let reads observe earlier writes made through the same
    store instance.
    """

    @abstractmethod
    async def find_by_email_or_phone(
        self,
        email: str | None,
        phone_number: str | None,
    ) -> list[ContactRecord]:
        """Records whose email equals `email` or whose phone equals `phone_number`.

        A `None` argument matches nothing.
        """

    @abstractmethod
    async def find_by_linked_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        """Records whose `linked_id` is in `ids`."""

    @abstractmethod
    async def find_by_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        """Records by primary key."""

    @abstractmethod
    async def find_by_ids_ordered_by_creation(self, ids: Collection[int]) -> list[ContactRecord]:
        """Records by primary key, oldest first (`created_at`, then `id`)."""

    @abstractmethod
    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        """Create a record; the store assigns id, created_at and updated_at."""

    @abstractmethod
    async def update_link(
        self,
        contact_id: int,
        *,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> None:
        """Set link and precedence of one record, refreshing updated_at."""

    @abstractmethod
    async def update_linked_id(self, filter_linked_id: int, new_linked_id: int) -> None:
        """Re-point every record linked to `filter_linked_id` at `new_linked_id`."""

    async def ping(self) -> None:
        """Raise StoreError when the store cannot serve requests."""
        return None


class InMemoryContactStore(ContactStore):
    """
    In-memory contact storage for development/testing.

    Records live in an arena keyed by id; ids come from an integer sequence
    so creation order is total even when the clock does not move.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._records: dict[int, ContactRecord] = {}
        self._next_id = 1

    @property
    def records(self) -> list[ContactRecord]:
        """Snapshot of every stored record in id order."""
        return list(self._records.values())

    def get(self, contact_id: int) -> ContactRecord | None:
        return self._records.get(contact_id)

    async def find_by_email_or_phone(
        self,
        email: str | None,
        phone_number: str | None,
    ) -> list[ContactRecord]:
        return [
            record
            for record in self._records.values()
            if (email is not None and record.email == email)
            or (phone_number is not None and record.phone_number == phone_number)
        ]

    async def find_by_linked_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        wanted = set(ids)
        return [record for record in self._records.values() if record.linked_id in wanted]

    async def find_by_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        wanted = set(ids)
        return [record for record in self._records.values() if record.id in wanted]

    async def find_by_ids_ordered_by_creation(self, ids: Collection[int]) -> list[ContactRecord]:
        return sorted(await self.find_by_ids(ids), key=lambda record: record.creation_key)

    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        now = self._clock()
        record = ContactRecord(
            id=self._next_id,
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence,
            created_at=now,
            updated_at=now,
        )
        self._records[record.id] = record
        self._next_id += 1

        logger.debug(
            "Stored contact",
            contact_id=record.id,
            link_precedence=link_precedence.value,
            linked_id=linked_id,
        )
        return record

    async def update_link(
        self,
        contact_id: int,
        *,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> None:
        record = self._records.get(contact_id)
        if record is None:
            return
        self._records[contact_id] = record.model_copy(
            update={
                "linked_id": linked_id,
                "link_precedence": link_precedence,
                "updated_at": self._clock(),
            }
        )

    async def update_linked_id(self, filter_linked_id: int, new_linked_id: int) -> None:
        now = self._clock()
        for contact_id, record in list(self._records.items()):
            if record.linked_id == filter_linked_id:
                self._records[contact_id] = record.model_copy(
                    update={"linked_id": new_linked_id, "updated_at": now}
                )


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        logger.warning("Contact store operation failed", operation=operation, error=str(e))
        raise StoreError() from e


def _to_record(row: Contact) -> ContactRecord:
    return ContactRecord(
        id=row.id,
        email=row.email,
        phone_number=row.phone_number,
        linked_id=row.linked_id,
        link_precedence=LinkPrecedence(row.link_precedence),
        created_at=coerce_utc(row.created_at),
        updated_at=coerce_utc(row.updated_at),
        deleted_at=coerce_utc(row.deleted_at) if row.deleted_at else None,
    )


class PostgresContactStore(ContactStore):
    """
    PostgreSQL-backed contact storage.

    Bound to a single AsyncSession, so every call made while serving one
    request shares that request's transaction.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utc_now):
        self._session = session
        self._clock = clock

    async def _select(self, *criteria, ordered_by_creation: bool = False) -> list[ContactRecord]:
        query = select(Contact).where(*criteria).execution_options(populate_existing=True)
        if ordered_by_creation:
            query = query.order_by(Contact.created_at.asc(), Contact.id.asc())
        else:
            query = query.order_by(Contact.id.asc())
        result = await self._session.execute(query)
        return [_to_record(row) for row in result.scalars().all()]

    async def find_by_email_or_phone(
        self,
        email: str | None,
        phone_number: str | None,
    ) -> list[ContactRecord]:
        conditions = []
        if email is not None:
            conditions.append(Contact.email == email)
        if phone_number is not None:
            conditions.append(Contact.phone_number == phone_number)
        if not conditions:
            return []

        with _store_errors("find_by_email_or_phone"):
            return await self._select(or_(*conditions))

    async def find_by_linked_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        if not ids:
            return []
        with _store_errors("find_by_linked_ids"):
            return await self._select(Contact.linked_id.in_(list(ids)))

    async def find_by_ids(self, ids: Collection[int]) -> list[ContactRecord]:
        if not ids:
            return []
        with _store_errors("find_by_ids"):
            return await self._select(Contact.id.in_(list(ids)))

    async def find_by_ids_ordered_by_creation(self, ids: Collection[int]) -> list[ContactRecord]:
        if not ids:
            return []
        with _store_errors("find_by_ids_ordered_by_creation"):
            return await self._select(Contact.id.in_(list(ids)), ordered_by_creation=True)

    async def insert(
        self,
        *,
        email: str | None,
        phone_number: str | None,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> ContactRecord:
        now = self._clock()
        row = Contact(
            email=email,
            phone_number=phone_number,
            linked_id=linked_id,
            link_precedence=link_precedence.value,
            created_at=now,
            updated_at=now,
        )
        with _store_errors("insert"):
            self._session.add(row)
            await self._session.flush()

        logger.debug(
            "Stored contact in PostgreSQL",
            contact_id=row.id,
            link_precedence=link_precedence.value,
            linked_id=linked_id,
        )
        return _to_record(row)

    async def update_link(
        self,
        contact_id: int,
        *,
        linked_id: int | None,
        link_precedence: LinkPrecedence,
    ) -> None:
        query = (
            update(Contact)
            .where(Contact.id == contact_id)
            .values(
                linked_id=linked_id,
                link_precedence=link_precedence.value,
                updated_at=self._clock(),
            )
            .execution_options(synchronize_session=False)
        )
        with _store_errors("update_link"):
            await self._session.execute(query)

    async def update_linked_id(self, filter_linked_id: int, new_linked_id: int) -> None:
        query = (
            update(Contact)
            .where(Contact.linked_id == filter_linked_id)
            .values(linked_id=new_linked_id, updated_at=self._clock())
            .execution_options(synchronize_session=False)
        )
        with _store_errors("update_linked_id"):
            await self._session.execute(query)

    async def ping(self) -> None:
        with _store_errors("ping"):
            await self._session.execute(select(1))


# =============================================================================
# Factory Functions
# =============================================================================

StoreProvider = Callable[[], AbstractAsyncContextManager[ContactStore]]

# Global instance for the "memory" backend
_memory_store: InMemoryContactStore | None = None


def get_memory_contact_store() -> InMemoryContactStore:
    """Get or create the process-wide in-memory store."""
    global _memory_store

    if _memory_store is None:
        _memory_store = InMemoryContactStore()

    return _memory_store


@asynccontextmanager
async def memory_contact_store() -> AsyncGenerator[ContactStore, None]:
    yield get_memory_contact_store()


@asynccontextmanager
async def postgres_contact_store() -> AsyncGenerator[ContactStore, None]:
    """
    Open a PostgreSQL store scoped to one transaction.

    Everything done through the yielded store commits together when the
    block exits, or rolls back if it raises.
    """
    with _store_errors("transaction"):
        async with get_db_session() as session:
            yield PostgresContactStore(session)


def get_store_provider() -> StoreProvider:
    """Select the store provider for the configured backend."""
    if get_settings().contact_store_backend == "memory":
        return memory_contact_store
    return postgres_contact_store
