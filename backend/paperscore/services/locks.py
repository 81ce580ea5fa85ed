"""
Per-exam analysis lease.

Two analysis runs on the same exam would interleave their writes, so a run
holds a lease document in `analysis_locks` (keyed by exam id) for its whole
duration. Leases carry an expiry so a crashed process cannot block an exam
forever.
"""

from datetime import datetime, timezone, timedelta

from pymongo.errors import DuplicateKeyError

from paperscore.config import logger
from paperscore.errors import ConflictError


class ExamLease:

    def __init__(self, db, ttl_seconds: int = 3600):
        self.db = db
        self.ttl_seconds = ttl_seconds

    async def acquire(self, exam_id: str, holder: str):
        now = datetime.now(timezone.utc)
        doc = {
            "_id": exam_id,
            "holder": holder,
            "acquired_at": now.isoformat(),
            "expires_at": (now + timedelta(seconds=self.ttl_seconds)).isoformat(),
        }
        try:
            await self.db.analysis_locks.insert_one(doc)
        except DuplicateKeyError:
            # Reclaim a lease left behind by a run that never released it
            stale = await self.db.analysis_locks.delete_one(
                {"_id": exam_id, "expires_at": {"$lt": now.isoformat()}}
            )
            if stale.deleted_count == 0:
                raise ConflictError(f"An analysis run is already in progress for exam {exam_id}")
            logger.warning(f"Reclaimed expired analysis lease for exam {exam_id}")
            try:
                await self.db.analysis_locks.insert_one(doc)
            except DuplicateKeyError:
                raise ConflictError(f"An analysis run is already in progress for exam {exam_id}")
        logger.info(f"Analysis lease for exam {exam_id} acquired by {holder}")

    async def release(self, exam_id: str, holder: str):
        await self.db.analysis_locks.delete_one({"_id": exam_id, "holder": holder})
        logger.info(f"Analysis lease for exam {exam_id} released by {holder}")
