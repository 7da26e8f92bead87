"""
Storage for the single tracker configuration record.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.engine import Connection, Engine

from backend.db.engine import insert_ignore, transaction
from backend.db.tables import CONFIG_ROW_ID, create_tables, tracker_config
from backend.models.config import TrackerConfig


logger = logging.getLogger(__name__)


class ConfigStore:
    """
    Get/set access to the tracker configuration.

    The record lives under a fixed primary key, so lazily creating the
    default is an insert-if-absent that concurrent callers cannot duplicate.
    Values are read from the database on every call.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        create_tables(engine)

    def ensure_default(self) -> bool:
        """
        Create the default record if none exists.

        Returns:
            True if the default record was created by this call
        """
        with transaction(self.engine, write=True) as conn:
            created = self._insert_default(conn)
        if created:
            logger.info("Default config created.")
        return created

    def get(self) -> TrackerConfig:
        """Get the current configuration, creating the default first if needed."""
        with transaction(self.engine) as conn:
            row = conn.execute(
                select(tracker_config.c.prevent_duplicate_reads)
                .where(tracker_config.c.id == CONFIG_ROW_ID)
            ).first()
        if row is not None:
            return TrackerConfig(prevent_duplicate_reads=row.prevent_duplicate_reads)

        self.ensure_default()
        with transaction(self.engine) as conn:
            value = conn.execute(
                select(tracker_config.c.prevent_duplicate_reads)
                .where(tracker_config.c.id == CONFIG_ROW_ID)
            ).scalar_one()
        return TrackerConfig(prevent_duplicate_reads=value)

    def set(self, prevent_duplicate_reads: bool) -> TrackerConfig:
        """
        Update the duplicate-read policy.

        Args:
            prevent_duplicate_reads: New flag value

        Returns:
            The configuration as stored
        """
        now = datetime.now(timezone.utc)
        with transaction(self.engine, write=True) as conn:
            self._insert_default(conn)
            conn.execute(
                update(tracker_config)
                .where(tracker_config.c.id == CONFIG_ROW_ID)
                .values(prevent_duplicate_reads=prevent_duplicate_reads, updated_at=now)
            )
        return TrackerConfig(prevent_duplicate_reads=prevent_duplicate_reads)

    def _insert_default(self, conn: Connection) -> bool:
        return insert_ignore(
            conn,
            tracker_config,
            {
                "id": CONFIG_ROW_ID,
                "prevent_duplicate_reads": False,
                "updated_at": datetime.now(timezone.utc),
            },
            index_elements=["id"],
        )
