"""
Paper store backed by SQLAlchemy.

Handles storage and retrieval of papers keyed by their external id, the
reads recorded against them, and filtered, paginated search.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select
from sqlalchemy.engine import Connection, Engine

from backend.db.engine import fold_case, fold_text, insert_ignore, transaction
from backend.db.tables import create_tables, paper_authors, paper_reads, papers
from backend.models.paper import Paper, PaperMetadata, ReadEntry, SearchCriteria


logger = logging.getLogger(__name__)

LIKE_ESCAPE = "\\"

# Given the reads already stored for a paper and the candidate read,
# decide whether the candidate may be appended.
AppendGuard = Callable[[list[ReadEntry], ReadEntry], bool]


class AppendResult(BaseModel):
    """Outcome of a create-or-append call."""
    paper: Paper
    created: bool
    appended: bool


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _escape_like(term: str) -> str:
    return (
        term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class PaperStore:
    """
    Durable collection of papers with their reads.

    Every mutation runs as a single write transaction so a duplicate check
    and the append it guards can never interleave with another writer on
    the same paper.
    """

    def __init__(self, engine: Engine):
        """
        Initialize paper store.

        Args:
            engine: SQLAlchemy engine (see ``create_db_engine``)
        """
        self.engine = engine
        create_tables(engine)
        logger.info("Initialized PaperStore")

    def find_by_id(self, paper_id: str) -> Optional[Paper]:
        """
        Get a paper with all its reads.

        Args:
            paper_id: External paper id

        Returns:
            Paper if found, None otherwise
        """
        with transaction(self.engine) as conn:
            return self._load_paper(conn, paper_id)

    def upsert_append_read(
        self,
        paper_id: str,
        metadata: PaperMetadata,
        read: ReadEntry,
        guard: Optional[AppendGuard] = None,
    ) -> AppendResult:
        """
        Create the paper if it is new, then append a read to it.

        Metadata is only written when the paper is created; for an existing
        paper it is ignored. The paper row is locked before ``guard`` sees
        the existing reads, so concurrent calls for the same paper are
        decided one after another.

        Args:
            paper_id: External paper id
            metadata: Metadata to store if the paper does not exist yet
            read: Read to append
            guard: Optional predicate; when it returns False nothing is appended

        Returns:
            AppendResult with the paper as stored after the call
        """
        now = datetime.now(timezone.utc)

        with transaction(self.engine, write=True) as conn:
            created = insert_ignore(
                conn,
                papers,
                {
                    "id": paper_id,
                    "title": metadata.title,
                    "abstract": metadata.abstract,
                    "publish_year": metadata.publish_year,
                    "created_at": now,
                },
                index_elements=["id"],
            )
            if created:
                conn.execute(
                    paper_authors.insert(),
                    [
                        {"paper_id": paper_id, "position": position, "name": name}
                        for position, name in enumerate(metadata.authors)
                    ],
                )

            # Row lock on PostgreSQL; SQLite already holds the write lock.
            conn.execute(select(papers.c.id).where(papers.c.id == paper_id).with_for_update())

            appended = True
            if guard is not None and not created:
                existing = self._load_reads(conn, [paper_id]).get(paper_id, [])
                appended = guard(existing, read)

            if appended:
                conn.execute(
                    paper_reads.insert().values(
                        entry_id=read.entry_id,
                        paper_id=paper_id,
                        user=read.user,
                        notes=read.notes,
                        timestamp=read.timestamp,
                    )
                )

            paper = self._load_paper(conn, paper_id)

        if created:
            logger.info(f"Created paper {paper_id}")
        if appended:
            logger.debug(f"Appended read {read.entry_id} to paper {paper_id}")
        return AppendResult(paper=paper, created=created, appended=appended)

    def remove_read(self, paper_id: str, entry_id: str, scope_user: Optional[str] = None) -> Optional[Paper]:
        """
        Remove one read from a paper.

        The delete is a single conditional statement, so of two concurrent
        removals of the same entry exactly one deletes a row.

        Args:
            paper_id: External paper id
            entry_id: Read entry id
            scope_user: If given, the read must belong to this user

        Returns:
            Updated paper, or None if no matching read was found
        """
        conditions = [paper_reads.c.paper_id == paper_id, paper_reads.c.entry_id == entry_id]
        if scope_user is not None:
            conditions.append(paper_reads.c.user == scope_user)

        with transaction(self.engine, write=True) as conn:
            result = conn.execute(paper_reads.delete().where(*conditions))
            if result.rowcount == 0:
                return None
            paper = self._load_paper(conn, paper_id)

        logger.debug(f"Removed read {entry_id} from paper {paper_id}")
        return paper

    def search(self, criteria: SearchCriteria) -> tuple[list[Paper], int]:
        """
        Find papers matching all given criteria.

        Results are ordered by paper id so that pages are stable while the
        data is unchanged.

        Args:
            criteria: Filters and page window

        Returns:
            Tuple of (papers on the requested page, total number of matches)
        """
        conditions = self._search_conditions(criteria)

        count_stmt = select(func.count()).select_from(papers).where(*conditions)
        page_stmt = (
            select(papers.c.id)
            .where(*conditions)
            .order_by(papers.c.id)
            .offset(criteria.offset)
            .limit(criteria.limit)
        )

        with transaction(self.engine) as conn:
            total_count = conn.execute(count_stmt).scalar_one()
            page_ids = list(conn.execute(page_stmt).scalars())
            results = self._load_papers(conn, page_ids)

        logger.debug(
            f"Search {criteria.model_dump(exclude_none=True)} matched {total_count}, "
            f"returning {len(results)}"
        )
        return results, total_count

    # Query helpers

    def _search_conditions(self, criteria: SearchCriteria) -> list:
        conditions = []

        if criteria.keyword:
            dialect = self.engine.dialect.name
            pattern = f"%{_escape_like(fold_text(dialect, criteria.keyword))}%"

            def matches(column):
                return fold_case(dialect, column).like(pattern, escape=LIKE_ESCAPE)

            author_match = (
                select(paper_authors.c.paper_id)
                .where(paper_authors.c.paper_id == papers.c.id, matches(paper_authors.c.name))
                .exists()
            )
            conditions.append(or_(matches(papers.c.title), matches(papers.c.abstract), author_match))

        if criteria.user:
            conditions.append(
                select(paper_reads.c.seq)
                .where(and_(paper_reads.c.paper_id == papers.c.id, paper_reads.c.user == criteria.user))
                .exists()
            )

        if criteria.publish_year is not None:
            conditions.append(papers.c.publish_year == criteria.publish_year)

        return conditions

    def _load_paper(self, conn: Connection, paper_id: str) -> Optional[Paper]:
        loaded = self._load_papers(conn, [paper_id])
        return loaded[0] if loaded else None

    def _load_papers(self, conn: Connection, paper_ids: list[str]) -> list[Paper]:
        """Load papers with authors and reads, preserving the order of ``paper_ids``."""
        if not paper_ids:
            return []

        rows = {
            row.id: row
            for row in conn.execute(select(papers).where(papers.c.id.in_(paper_ids)))
        }

        authors: dict[str, list[str]] = {}
        author_rows = conn.execute(
            select(paper_authors.c.paper_id, paper_authors.c.name)
            .where(paper_authors.c.paper_id.in_(paper_ids))
            .order_by(paper_authors.c.paper_id, paper_authors.c.position)
        )
        for paper_id, name in author_rows:
            authors.setdefault(paper_id, []).append(name)

        reads = self._load_reads(conn, paper_ids)

        result = []
        for paper_id in paper_ids:
            row = rows.get(paper_id)
            if row is None:
                continue
            result.append(
                Paper(
                    id=row.id,
                    metadata=PaperMetadata.model_construct(
                        title=row.title,
                        authors=authors.get(row.id, []),
                        abstract=row.abstract,
                        publish_year=row.publish_year,
                    ),
                    reads=reads.get(row.id, []),
                )
            )
        return result

    def _load_reads(self, conn: Connection, paper_ids: Iterable[str]) -> dict[str, list[ReadEntry]]:
        reads: dict[str, list[ReadEntry]] = {}
        read_rows = conn.execute(
            select(paper_reads)
            .where(paper_reads.c.paper_id.in_(list(paper_ids)))
            .order_by(paper_reads.c.seq)
        )
        for row in read_rows:
            reads.setdefault(row.paper_id, []).append(
                ReadEntry(
                    entry_id=row.entry_id,
                    user=row.user,
                    timestamp=_as_utc(row.timestamp),
                    notes=row.notes,
                )
            )
        return reads
