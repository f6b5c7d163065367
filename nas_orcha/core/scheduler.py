"""
Task scheduler for the NAS App Orchestrator.

This module runs created tasks in the background, one worker thread per
task, and records their terminal outcome in the task store and the audit log.
"""

import json
import logging
import threading
from collections import defaultdict
from contextlib import nullcontext
from typing import Any, Callable, Dict, Optional

from nas_orcha.core.audit import AuditLog
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import OrchestratorError
from nas_orcha.models.task import Task


logger = logging.getLogger('nas_orchestrator.scheduler')

Executor = Callable[[], Dict[str, Any]]


class TaskScheduler:
    """
    Dispatches task executors asynchronously, at most once per task id.

    The in-flight guard is keyed by task id only: two tasks created for the
    same application may run concurrently. ``serialize_per_app`` adds a
    mutex per target id on top of that; bundle installs hold the bundle
    id's mutex and take each member's mutex around that member's install.
    """
    def __init__(self, store: TaskStore, audit: AuditLog, serialize_per_app: bool = False):
        """
        Initialize the task scheduler.

        Args:
            store: The task store
            audit: Audit sink for task outcomes
            serialize_per_app: Run tasks for the same target one at a time
        """
        self.store = store
        self.audit = audit
        self.serialize_per_app = serialize_per_app
        self.lock = threading.Lock()
        self.in_flight = set()
        self.threads: Dict[int, threading.Thread] = {}
        self.app_locks = defaultdict(threading.Lock)

    def is_in_flight(self, task_id: int) -> bool:
        with self.lock:
            return task_id in self.in_flight

    def dispatch(self, task: Task, executor: Executor, audit_action: str) -> bool:
        """
        Run ``executor`` for ``task`` in the background.

        Args:
            task: The queued task
            executor: Does the work and returns a result dict with a ``message``
            audit_action: Action name written to the audit log

        Returns:
            bool: False if the task was already in flight and nothing was started
        """
        with self.lock:
            if task.id in self.in_flight:
                logger.warning(f"Task {task.id} is already in flight, ignoring dispatch")
                return False
            self.in_flight.add(task.id)
            thread = threading.Thread(
                target=self._run,
                args=(task, executor, audit_action),
                name=f"task-{task.id}",
                daemon=True,
            )
            self.threads[task.id] = thread

        thread.start()
        logger.info(f"Dispatched task {task.id}: {task.app_id} {task.action.value}")
        return True

    def app_lock(self, app_id: str):
        """
        The mutex serializing work on ``app_id``, or a no-op context when
        ``serialize_per_app`` is off. Bundle installs take it per member.
        """
        if not self.serialize_per_app:
            return nullcontext()
        with self.lock:
            return self.app_locks[app_id]

    def _run(self, task: Task, executor: Executor, audit_action: str):
        try:
            with self.app_lock(task.app_id):
                self._execute(task, executor, audit_action)
        finally:
            with self.lock:
                self.in_flight.discard(task.id)
                self.threads.pop(task.id, None)

    def _execute(self, task: Task, executor: Executor, audit_action: str):
        status, detail = "failed", ""
        try:
            result = executor() or {}
        except Exception as e:  # every failure becomes the task's terminal state
            detail = str(e) or e.__class__.__name__
            logger.error(f"Task {task.id} ({task.app_id} {task.action.value}) failed: {detail}")
            self._record_failure(task, detail)
        else:
            status, detail = self._record_success(task, result)
        finally:
            self._write_audit(task, audit_action, status, detail)

    def _record_success(self, task: Task, result: Dict[str, Any]):
        message = result.get('message') or f"{task.action.value} succeeded"
        try:
            self.store.mark_success(task.id, message)
            self.store.append_log(task.id, "Task finished")
        except (OrchestratorError, OSError) as e:
            error = f"Could not record success: {str(e)}"
            logger.error(f"Task {task.id} ({task.app_id} {task.action.value}): {error}")
            self._record_failure(task, error)
            return "failed", error

        logger.info(f"Task {task.id} ({task.app_id} {task.action.value}) succeeded")
        return "ok", json.dumps(result, default=str)

    def _record_failure(self, task: Task, message: str):
        try:
            self.store.mark_failed(task.id, message)
            self.store.append_log(task.id, f"Failed: {message}")
        except (OrchestratorError, OSError) as e:
            logger.error(f"Could not record failure of task {task.id}: {str(e)}")

    def _write_audit(self, task: Task, audit_action: str, status: str, detail: str):
        try:
            self.audit.write(action=audit_action, actor=task.actor, target=task.app_id,
                             status=status, detail=detail)
        except OSError as e:
            logger.error(f"Could not write audit record for task {task.id}: {str(e)}")

    def join(self, task_id: int, timeout: Optional[float] = None) -> bool:
        """
        Wait for a task's worker to finish.

        Returns:
            bool: True if the task is no longer running
        """
        with self.lock:
            thread = self.threads.get(task_id)
        if thread is not None:
            thread.join(timeout)
        return not self.is_in_flight(task_id)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for every in-flight task (each join gets ``timeout``)."""
        with self.lock:
            threads = list(self.threads.values())
        for thread in threads:
            thread.join(timeout)
        with self.lock:
            return not self.in_flight
