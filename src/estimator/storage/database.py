"""Database operations using psycopg (PostgreSQL)."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

import psycopg
from psycopg.rows import dict_row

from ..errors import StorageFailure
from ..models import AnalysisResult, ReviewAnalysis
from .base import AnalysisStore, dump_json

logger = logging.getLogger(__name__)


class DatabaseClient(AnalysisStore):
    """PostgreSQL client for the ``reviews`` table."""

    def __init__(self, database_url: str):
        """Initialize database client.

        Args:
            database_url: PostgreSQL connection string
        """
        self.database_url = database_url
        self._conn: Optional[psycopg.Connection] = None

    def connect(self) -> psycopg.Connection:
        """Open the connection on first use, or reopen it after a drop."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg.connect(self.database_url, row_factory=dict_row, autocommit=False)
            logger.info("Connected to reviews database")
        return self._conn

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
            logger.info("Closed reviews database connection")

    @contextmanager
    def transaction(self):
        """Yield the connection; commit when the block exits cleanly, roll back otherwise."""
        conn = self.connect()
        try:
            yield conn
        except Exception as e:
            conn.rollback()
            logger.error(f"Rolled back reviews transaction: {e}")
            raise
        conn.commit()

    # ========================================================================
    # Review Operations
    # ========================================================================

    def save_analysis(self, review_id: str, analysis: ReviewAnalysis) -> None:
        """Overwrite the stored analysis for a review and mark it completed.

        Raises:
            StorageFailure: If the review does not exist or the write fails
        """
        try:
            with self.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        UPDATE reviews
                        SET ai_analysis_json = %s,
                            classification_json = %s,
                            status = 'completed',
                            error_message = NULL,
                            updated_at = %s
                        WHERE id = %s
                    """, (
                        dump_json(analysis.analysis),
                        dump_json(analysis.classification),
                        datetime.now(timezone.utc),
                        review_id,
                    ))
                    if cur.rowcount == 0:
                        raise StorageFailure(f"Review not found: {review_id}", analysis)
        except psycopg.Error as e:
            raise StorageFailure(f"Failed to save analysis: {e}", analysis) from e

        logger.info(f"Saved analysis for review {review_id}")

    def update_review_status(
        self, review_id: str, status: str, error_message: Optional[str] = None
    ) -> None:
        """Set the review's status (``analyzing``, ``completed``, ``error``).

        Raises:
            StorageFailure: If the write fails
        """
        try:
            with self.transaction() as conn:
                with conn.cursor() as cur:
                    cur.execute("""
                        UPDATE reviews
                        SET status = %s,
                            error_message = %s,
                            updated_at = %s
                        WHERE id = %s
                    """, (status, error_message, datetime.now(timezone.utc), review_id))
        except psycopg.Error as e:
            raise StorageFailure(f"Failed to update status for review {review_id}: {e}") from e
        logger.debug(f"Review {review_id} status -> {status}")

    def get_analysis(self, review_id: str) -> Optional[AnalysisResult]:
        """Fetch the stored analysis for a review, if any."""
        conn = self.connect()
        with conn.cursor() as cur:
            cur.execute("""
                SELECT ai_analysis_json
                FROM reviews
                WHERE id = %s
            """, (review_id,))
            row = cur.fetchone()
        if not row or row["ai_analysis_json"] is None:
            return None
        return AnalysisResult.model_validate(row["ai_analysis_json"])
