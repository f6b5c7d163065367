"""
Retry of failed tasks as new tasks.
"""

import logging
from typing import Callable

from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import NotFoundError, NotRetryable
from nas_orcha.models.enums import TaskStatus
from nas_orcha.models.task import Task


logger = logging.getLogger('nas_orchestrator.retry')


class RetryManager:
    """
    Clones a failed task into a new queued task and dispatches it.

    The failed record is left untouched; the clone points back to it
    through ``retried_from``.
    """
    def __init__(self, store: TaskStore, dispatch: Callable[[Task], bool]):
        """
        Args:
            store: The task store
            dispatch: Routes a task to the bundle or single-application executor
        """
        self.store = store
        self.dispatch = dispatch

    def retry(self, task_id: int, actor: str) -> Task:
        source = self.store.get(task_id)
        if source is None:
            raise NotFoundError(f"Task #{task_id} not found")
        if source.status != TaskStatus.FAILED:
            raise NotRetryable(task_id, source.status.value)

        clone = self.store.clone_failed_as_retry(task_id, actor)
        if clone is None:
            raise NotRetryable(task_id)

        self.store.append_log(clone.id, f"Retry of task #{task_id}")
        logger.info(f"Task {task_id} retried as task {clone.id} by {actor}")
        self.dispatch(clone)
        return clone
