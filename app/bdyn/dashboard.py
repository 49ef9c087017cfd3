from __future__ import annotations
from typing import Callable, Dict, Optional
import logging

from .aggregator import TaskSummary, get_summaries
from .errors import FetchFailure, MissingSession
from .models import TaskType
from .sink import Sink

logger = logging.getLogger(__name__)

LOADING = "loading"
FAILED = "failed"
READY = "ready"

FAILED_MESSAGE = "Failed to load statistics. Please try refreshing."
NO_SESSION_MESSAGE = "No session found. Start the tasks first."


class DashboardModel:
    """
    View state for the statistics screen.

    ``summaries`` stays empty until a load succeeds; a failed load never keeps
    data from an earlier one. ``selected`` is None when there is nothing to show.
    """

    def __init__(self, sink: Sink, session_id: Callable[[], Optional[str]]):
        self.sink = sink
        self._session_id = session_id
        self.status = LOADING
        self.error: Optional[str] = None
        self.summaries: Dict[TaskType, TaskSummary] = {}
        self.selected_task: Optional[TaskType] = None

    def load(self) -> None:
        self.status = LOADING
        self.summaries = {}
        try:
            summaries = get_summaries(self.sink, self._session_id())
        except MissingSession:
            self.status, self.error = FAILED, NO_SESSION_MESSAGE
            return
        except FetchFailure:
            logger.exception("Dashboard load failed")
            self.status, self.error = FAILED, FAILED_MESSAGE
            return
        self.summaries = summaries
        self.status, self.error = READY, None
        if self.selected_task not in summaries:
            self.selected_task = next(iter(summaries), None)

    def select(self, task_type: TaskType) -> None:
        self.selected_task = TaskType(task_type)

    @property
    def selected(self) -> Optional[TaskSummary]:
        if self.selected_task is None:
            return None
        return self.summaries.get(self.selected_task)

    @staticmethod
    def has_data(summary: Optional[TaskSummary]) -> bool:
        """False for a missing summary and for one with nothing recorded yet."""
        return summary is not None and not summary.is_empty
