"""Normalized per-entity collections.

The job document embeds every artifact for read efficiency; these tables
keep the originals, one row per record tagged with its job_id, for
auditing.
"""

import logging
from typing import Sequence

from pydantic import BaseModel

from outreach.executor.db import Database, json_dumps, json_loads
from outreach.executor.schemas import new_id, utc_now

logger = logging.getLogger(__name__)

COLLECTIONS = ("prospects", "research_analyses", "cv_insights", "email_drafts")


class ArtifactStore:
    def __init__(self, db: Database):
        self.db = db

    def save(self, collection: str, job_id: str, records: Sequence[BaseModel]) -> int:
        """Insert ``records`` into ``collection``. Returns the number saved."""
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        if not records:
            return 0

        now = utc_now()
        with self.db.transaction() as tx:
            for position, record in enumerate(records):
                record_id = getattr(record, "id", "") or new_id("rec")
                tx.execute(
                    f"""INSERT INTO {collection} (id, job_id, position, data, created_at)
                        VALUES (%s, %s, %s, %s, %s)""",
                    (record_id, job_id, position, json_dumps(record.model_dump(mode="json")), now),
                )

        logger.debug(f"Saved {len(records)} {collection} for job {job_id}")
        return len(records)

    def load(self, collection: str, job_id: str) -> list[dict]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        rows = self.db.execute(
            f"SELECT data FROM {collection} WHERE job_id = %s ORDER BY created_at, position",
            (job_id,),
            fetch="all",
        )
        return [json_loads(row["data"], default={}) for row in rows]
