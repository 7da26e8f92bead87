"""
Relational schema for papers, their reads and the tracker config record.

Each paper owns its authors and reads as child rows. ``seq`` columns keep
insertion order, which is the order reads are reported in.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)


metadata = MetaData()

papers = Table(
    "papers",
    metadata,
    Column("id", String(512), primary_key=True),
    Column("title", Text, nullable=False),
    Column("abstract", Text, nullable=False),
    Column("publish_year", Integer, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_papers_publish_year", "publish_year"),
)

paper_authors = Table(
    "paper_authors",
    metadata,
    Column("paper_id", String(512), ForeignKey("papers.id", ondelete="CASCADE"), primary_key=True),
    Column("position", Integer, primary_key=True),
    Column("name", Text, nullable=False),
)

paper_reads = Table(
    "paper_reads",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("entry_id", String(64), nullable=False, unique=True),
    Column("paper_id", String(512), ForeignKey("papers.id", ondelete="CASCADE"), nullable=False),
    Column("user", String(255), nullable=False),
    Column("notes", Text, nullable=False, default=""),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Index("ix_paper_reads_paper_id", "paper_id"),
    Index("ix_paper_reads_user", "user"),
)

# Single-row table; the fixed primary key makes the default row unique.
tracker_config = Table(
    "tracker_config",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("prevent_duplicate_reads", Boolean, nullable=False, default=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

CONFIG_ROW_ID = 1


def create_tables(engine) -> None:
    """Create all tables that don't exist yet."""
    metadata.create_all(engine)
