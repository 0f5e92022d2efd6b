"""
history_store.py — Per-video cache of fact-check reports (MongoDB).

One document per video_id (unique index). Collection: fact_check_history.

  find(video_id)               → HistoryRecord | None    (read only)
  upsert(video_id, report, …)  → HistoryRecord
      new video      → inserted with request_count = 1
      existing video → report fields replaced, request_count += 1
  increment_request_count(id)  → bump counter on a cache hit

upsert is a single find_one_and_update with $inc, so two writers racing on
the same video both get counted instead of the later one overwriting the
earlier count.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from vidfact.core.config import settings
from vidfact.core.database import get_db
from vidfact.models.factcheck import AnalysisReport, HistoryRecord

logger = logging.getLogger(__name__)


def _record_from_doc(doc: dict[str, Any]) -> HistoryRecord:
    doc = {k: v for k, v in doc.items() if k != "_id"}
    return HistoryRecord.model_validate(doc)


class HistoryStore:
    def __init__(self, db: AsyncIOMotorDatabase, collection: str | None = None) -> None:
        self.collection = db[collection or settings.history_collection]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index("video_id", unique=True)
        await self.collection.create_index([("video_id", 1), ("last_analyzed_at", -1)])
        await self.collection.create_index("trust_score")

    async def find(self, video_id: str) -> Optional[HistoryRecord]:
        doc = await self.collection.find_one({"video_id": video_id})
        if doc is None:
            return None
        return _record_from_doc(doc)

    async def upsert(
        self,
        video_id: str,
        report: AnalysisReport,
        analysis_result: dict[str, Any] | None = None,
    ) -> HistoryRecord:
        now = datetime.now(tz=timezone.utc)
        fields = {
            "youtube_url": report.video.url,
            "video_title": report.video.title,
            "analysis_method": report.method,
            "report": report.model_dump(mode="json", exclude={"request_count"}),
            "analysis_result": analysis_result or {},
            "summary": report.summary,
            "video_topic": report.video.topic,
            "trust_score": report.trust.score,
            "trust_level": report.trust.level,
            "total_claims": report.fact_check.total_claims,
            "last_analyzed_at": now,
            "updated_at": now,
        }
        doc = await self.collection.find_one_and_update(
            {"video_id": video_id},
            {
                "$set": fields,
                "$inc": {"request_count": 1},
                "$setOnInsert": {"video_id": video_id, "created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        record = _record_from_doc(doc)
        logger.info("Stored fact-check for %s (request_count=%d)", video_id, record.request_count)
        return record

    async def increment_request_count(self, video_id: str) -> None:
        await self.collection.update_one(
            {"video_id": video_id},
            {"$inc": {"request_count": 1}},
        )


def get_history_store(db=Depends(get_db)) -> Optional[HistoryStore]:
    """FastAPI dependency — None when MongoDB is unavailable."""
    if db is None:
        return None
    return HistoryStore(db)
