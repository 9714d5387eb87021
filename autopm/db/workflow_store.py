# autopm/db/workflow_store.py
from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from autopm.config import settings
from autopm.models.state import WorkflowState

log = logging.getLogger(__name__)

COL = "workflows"


class DocumentStore(Protocol):
    async def load(self, workflow_id: str) -> Optional[WorkflowState]: ...

    async def save(self, state: WorkflowState) -> None: ...

    async def delete(self, workflow_id: str) -> bool: ...

    async def list_by_user(self, user_id: str, limit: int = 50) -> List[WorkflowState]: ...


def get_database(uri: Optional[str] = None, name: Optional[str] = None) -> AsyncIOMotorDatabase:
    client = AsyncIOMotorClient(uri or settings.MONGO_URI)
    return client[name or settings.MONGO_DB]


class MongoWorkflowStore:
    """Whole-document persistence: one workflow per document, replaced on every save."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def ensure_indexes(self) -> None:
        col = self.db[COL]
        await col.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        await col.create_index([("updated_at", DESCENDING)])

    async def load(self, workflow_id: str) -> Optional[WorkflowState]:
        doc = await self.db[COL].find_one({"_id": workflow_id})
        return WorkflowState.model_validate(doc) if doc else None

    async def save(self, state: WorkflowState) -> None:
        doc = state.to_document()
        await self.db[COL].replace_one({"_id": state.id}, doc, upsert=True)

    async def delete(self, workflow_id: str) -> bool:
        res = await self.db[COL].delete_one({"_id": workflow_id})
        return res.deleted_count == 1

    async def list_by_user(self, user_id: str, limit: int = 50) -> List[WorkflowState]:
        cur = self.db[COL].find({"user_id": user_id}).sort("created_at", DESCENDING).limit(min(limit, 200))
        return [WorkflowState.model_validate(d) async for d in cur]
