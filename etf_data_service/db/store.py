"""
Record store used by the cache layer.

Two interchangeable backends with the same query subset (equality plus
``$gt``/``$gte``/``$lt``/``$lte``/``$ne``):
  MongoRecordStore  - motor, used when MongoDB is reachable
  MemoryRecordStore - process-local, degraded mode and tests
"""

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
SortSpec = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1


class RecordStore(ABC):
    """Minimal document store interface"""

    backend: str = "abstract"

    @abstractmethod
    async def find_one(self, collection: str, match: Document) -> Optional[Document]:
        ...

    @abstractmethod
    async def find_many(
        self,
        collection: str,
        match: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        ...

    @abstractmethod
    async def replace_one(self, collection: str, match: Document, doc: Document) -> None:
        """Replace the matching document, inserting it when absent"""

    @abstractmethod
    async def insert_one(self, collection: str, doc: Document) -> None:
        ...

    @abstractmethod
    async def delete_many(self, collection: str, match: Document) -> int:
        ...

    @abstractmethod
    async def count(self, collection: str, match: Optional[Document] = None) -> int:
        ...

    async def delete_expired(self, collection: str, now: datetime) -> int:
        return await self.delete_many(collection, {"expires_at": {"$lte": now}})

    async def ensure_indexes(self) -> None:
        return None


# ── MongoDB backend ───────────────────────────────────────

class MongoRecordStore(RecordStore):
    backend = "mongodb"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def find_one(self, collection: str, match: Document) -> Optional[Document]:
        return await self._db[collection].find_one(match, {"_id": 0})

    async def find_many(
        self,
        collection: str,
        match: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        cursor = self._db[collection].find(match or {}, {"_id": 0})
        if sort:
            cursor = cursor.sort(list(sort))
        if limit:
            cursor = cursor.limit(limit)
        return await cursor.to_list(length=None)

    async def replace_one(self, collection: str, match: Document, doc: Document) -> None:
        await self._db[collection].replace_one(match, dict(doc), upsert=True)

    async def insert_one(self, collection: str, doc: Document) -> None:
        # insert_one adds _id to the dict it is given
        await self._db[collection].insert_one(dict(doc))

    async def delete_many(self, collection: str, match: Document) -> int:
        result = await self._db[collection].delete_many(match)
        return result.deleted_count

    async def count(self, collection: str, match: Optional[Document] = None) -> int:
        return await self._db[collection].count_documents(match or {})

    async def ensure_indexes(self) -> None:
        for name in ("quote", "historical", "topPicks"):
            await self._db[name].create_index("key")
            await self._db[name].create_index("expires_at")
        await self._db["runLog"].create_index([("created_at", DESCENDING)])
        logger.info("MongoDB indexes ensured")


# ── In-memory backend ─────────────────────────────────────

_OPERATORS = {
    "$gt": lambda a, b: a is not None and a > b,
    "$gte": lambda a, b: a is not None and a >= b,
    "$lt": lambda a, b: a is not None and a < b,
    "$lte": lambda a, b: a is not None and a <= b,
    "$ne": lambda a, b: a != b,
}


def _matches(doc: Document, match: Optional[Document]) -> bool:
    for field, cond in (match or {}).items():
        value = doc.get(field)
        if isinstance(cond, dict):
            for op, operand in cond.items():
                if not _OPERATORS[op](value, operand):
                    return False
        elif value != cond:
            return False
    return True


class MemoryRecordStore(RecordStore):
    backend = "memory"

    def __init__(self):
        self._collections: Dict[str, List[Document]] = {}

    def _rows(self, collection: str) -> List[Document]:
        return self._collections.setdefault(collection, [])

    async def find_one(self, collection: str, match: Document) -> Optional[Document]:
        for doc in self._rows(collection):
            if _matches(doc, match):
                return copy.deepcopy(doc)
        return None

    async def find_many(
        self,
        collection: str,
        match: Optional[Document] = None,
        sort: Optional[SortSpec] = None,
        limit: int = 0,
    ) -> List[Document]:
        rows = [copy.deepcopy(d) for d in self._rows(collection) if _matches(d, match)]
        for field, direction in reversed(list(sort or [])):
            rows.sort(key=lambda d: d.get(field), reverse=direction == DESCENDING)
        return rows[:limit] if limit else rows

    async def replace_one(self, collection: str, match: Document, doc: Document) -> None:
        rows = self._rows(collection)
        for i, existing in enumerate(rows):
            if _matches(existing, match):
                rows[i] = copy.deepcopy(doc)
                return
        rows.append(copy.deepcopy(doc))

    async def insert_one(self, collection: str, doc: Document) -> None:
        self._rows(collection).append(copy.deepcopy(doc))

    async def delete_many(self, collection: str, match: Document) -> int:
        rows = self._rows(collection)
        kept = [d for d in rows if not _matches(d, match)]
        self._collections[collection] = kept
        return len(rows) - len(kept)

    async def count(self, collection: str, match: Optional[Document] = None) -> int:
        return sum(1 for d in self._rows(collection) if _matches(d, match))
