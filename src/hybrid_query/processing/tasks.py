"""
Handles for queries submitted for background processing.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from hybrid_query.errors import QueryCancelledError
from hybrid_query.models import QueryResult, QueryState, QueryStatus

logger = logging.getLogger(__name__)


class QueryHandle:
    """
    Explicit handle for a query running in the background.

    State moves pending -> running -> done | failed | cancelled. The
    outcome is collected by a done-callback, so an unobserved failure is
    recorded on the handle rather than lost.
    """

    def __init__(self, query_id: str):
        self.query_id = query_id
        self.submitted_at = datetime.now()
        self.finished_at: Optional[datetime] = None
        self.error: Optional[BaseException] = None
        self._state: QueryState = "pending"
        self._task: Optional[asyncio.Task] = None

    def attach(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(self._on_done)

    def mark_running(self) -> None:
        if self._state == "pending":
            self._state = "running"

    @property
    def state(self) -> QueryState:
        return self._state

    @property
    def status(self) -> QueryStatus:
        return QueryStatus(
            query_id=self.query_id,
            state=self._state,
            submitted_at=self.submitted_at,
            finished_at=self.finished_at,
            error=str(self.error) if self.error is not None else None,
        )

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> bool:
        if self._task is None or self._task.done():
            return False
        logger.info(f"Cancelling submitted query {self.query_id}")
        return self._task.cancel()

    async def result(self) -> QueryResult:
        """
        Wait for the query to finish.

        Raises:
            QueryCancelledError: If the query was cancelled
            QueryEngineError: Whatever process() raised
        """
        if self._task is None:
            raise RuntimeError(f"Query {self.query_id} has no task attached")
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                raise QueryCancelledError(f"Query {self.query_id} was cancelled") from None
            raise

    def _on_done(self, task: asyncio.Task) -> None:
        self.finished_at = datetime.now()
        if task.cancelled():
            self._state = "cancelled"
            return

        error = task.exception()
        if error is None:
            self._state = "done"
        elif isinstance(error, QueryCancelledError):
            self._state = "cancelled"
            self.error = error
        else:
            self._state = "failed"
            self.error = error
            logger.warning(f"Submitted query {self.query_id} failed: {error}")
