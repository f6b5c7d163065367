"""
Task record store for the NAS App Orchestrator.

Task metadata is kept in memory and mirrored to a JSON state file after
every mutation. Each task's log lives in its own append-only file under
``logs/``, so appending a line never rewrites the state file. Tasks are
never deleted, their status only moves forward, their progress never
decreases and their log only grows.
"""

import os
import copy
import json
import logging
import threading
from typing import Any, Dict, List, Optional

from nas_orcha.errors import NotFoundError, TaskStateError
from nas_orcha.models.enums import STATUS_TRANSITIONS, TaskAction, TaskStatus
from nas_orcha.models.options import NoOptions
from nas_orcha.models.task import Task, utc_now


logger = logging.getLogger('nas_orchestrator.task_store')

STATE_FILE = "tasks_state.json"
LOGS_DIR = "logs"

UPDATABLE_FIELDS = ('progress', 'message', 'options')


class TaskStore:
    """
    Durable CRUD over task records and their append-only logs.
    """
    def __init__(self, state_dir: Optional[str] = None):
        """
        Initialize the store.

        Args:
            state_dir: Directory for the state file and task logs. ``None`` keeps tasks in memory only.
        """
        self.state_dir = state_dir
        self.tasks: Dict[int, Task] = {}
        self.next_id = 1
        self.lock = threading.RLock()

        if self.state_dir:
            os.makedirs(os.path.join(self.state_dir, LOGS_DIR), exist_ok=True)
            self._load_state()

    @property
    def state_file(self) -> Optional[str]:
        if not self.state_dir:
            return None
        return os.path.join(self.state_dir, STATE_FILE)

    def log_file(self, task_id: int) -> Optional[str]:
        if not self.state_dir:
            return None
        return os.path.join(self.state_dir, LOGS_DIR, f"task-{task_id}.log")

    def _load_state(self):
        """Load saved tasks from disk."""
        if not os.path.exists(self.state_file):
            return

        try:
            with open(self.state_file, 'r') as f:
                data = json.load(f)
            for task_dict in data.get('tasks', []):
                task = Task.from_dict(task_dict)
                self.tasks[task.id] = task
        except (OSError, ValueError, KeyError) as e:
            broken = f"{self.state_file}.corrupt"
            logger.error(f"Failed to load task state, moving it to {broken}: {str(e)}")
            os.replace(self.state_file, broken)
            self.tasks = {}
            return

        for task in self.tasks.values():
            self._load_log(task)

        self.next_id = max(self.tasks, default=0) + 1
        logger.info(f"Loaded state with {len(self.tasks)} tasks")

    def _load_log(self, task: Task):
        """Read a task's log file; a log still embedded in the state file is moved out."""
        path = self.log_file(task.id)
        try:
            if os.path.exists(path):
                with open(path, 'r') as f:
                    task.log_text = f.read()
            elif task.log_text:
                with open(path, 'w') as f:
                    f.write(task.log_text)
        except OSError as e:
            logger.error(f"Failed to load log of task {task.id}: {str(e)}")

    @staticmethod
    def _task_record(task: Task) -> Dict[str, Any]:
        record = task.to_dict()
        record.pop('log_text', None)
        return record

    def _save_state(self):
        """Write task metadata to disk atomically."""
        if not self.state_file:
            return

        payload = {'tasks': [self._task_record(task) for task in self.tasks.values()]}
        tmp_file = f"{self.state_file}.tmp"
        with open(tmp_file, 'w') as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_file, self.state_file)

    def _require(self, task_id: int) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task #{task_id} not found")
        return task

    def _transition(self, task: Task, status: TaskStatus):
        if status not in STATUS_TRANSITIONS[task.status]:
            raise TaskStateError(
                f"Task #{task.id} cannot move from {task.status.value} to {status.value}"
            )
        task.status = status

    @staticmethod
    def _raise_progress(task: Task, progress: int):
        progress = max(0, min(100, int(progress)))
        if progress < task.progress:
            logger.debug(f"Ignoring progress {progress} below {task.progress} for task {task.id}")
            return
        task.progress = progress

    def create(self, app_id: str, action: TaskAction, actor: str, message: str = "",
               options=None, retried_from: Optional[int] = None) -> Task:
        """
        Create a queued task.

        Returns:
            Task: A copy of the stored record
        """
        with self.lock:
            now = utc_now()
            task = Task(
                id=self.next_id,
                app_id=app_id,
                action=TaskAction(action),
                actor=actor or 'system',
                message=message,
                options=options if options is not None else NoOptions(),
                retried_from=retried_from,
                created_at=now,
                updated_at=now,
            )
            if self.state_dir:
                with open(self.log_file(task.id), 'w'):
                    pass
            self.tasks[task.id] = task
            self.next_id += 1
            self._save_state()
            logger.info(f"Created task {task.id}: {app_id} {task.action.value} by {task.actor}")
            return copy.deepcopy(task)

    def append_log(self, task_id: int, line: str):
        """Append one timestamped line to the task log."""
        with self.lock:
            task = self._require(task_id)
            entry = f"[{utc_now()}] {line}\n"
            if self.state_dir:
                with open(self.log_file(task_id), 'a') as f:
                    f.write(entry)
            task.log_text += entry
            task.updated_at = utc_now()

    def update(self, task_id: int, **fields) -> Task:
        """Update progress, message or options of a task that is not finished."""
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update task fields: {', '.join(sorted(unknown))}")

        with self.lock:
            task = self._require(task_id)
            if task.status.terminal:
                raise TaskStateError(f"Task #{task_id} is already {task.status.value}")
            if 'progress' in fields:
                self._raise_progress(task, fields['progress'])
            if 'message' in fields:
                task.message = fields['message']
            if 'options' in fields:
                task.options = fields['options']
            task.updated_at = utc_now()
            self._save_state()
            return copy.deepcopy(task)

    def mark_running(self, task_id: int, progress: int, message: str) -> Task:
        with self.lock:
            task = self._require(task_id)
            self._transition(task, TaskStatus.RUNNING)
            self._raise_progress(task, progress)
            task.message = message
            task.updated_at = utc_now()
            self._save_state()
            return copy.deepcopy(task)

    def mark_success(self, task_id: int, message: str) -> Task:
        with self.lock:
            task = self._require(task_id)
            self._transition(task, TaskStatus.SUCCESS)
            task.progress = 100
            task.message = message
            task.finished_at = task.updated_at = utc_now()
            self._save_state()
            return copy.deepcopy(task)

    def mark_failed(self, task_id: int, error: str) -> Task:
        with self.lock:
            task = self._require(task_id)
            self._transition(task, TaskStatus.FAILED)
            task.message = error
            task.error_detail = error
            task.finished_at = task.updated_at = utc_now()
            self._save_state()
            return copy.deepcopy(task)

    def get(self, task_id: int) -> Optional[Task]:
        with self.lock:
            task = self.tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def get_logs(self, task_id: int) -> Optional[str]:
        with self.lock:
            task = self.tasks.get(task_id)
            return task.log_text if task else None

    def list_recent(self, limit: int = 60) -> List[Task]:
        """Return up to ``limit`` tasks, newest first."""
        limit = max(1, min(int(limit), 500))
        with self.lock:
            ids = sorted(self.tasks, reverse=True)[:limit]
            return [copy.deepcopy(self.tasks[task_id]) for task_id in ids]

    def clone_failed_as_retry(self, task_id: int, actor: str) -> Optional[Task]:
        """
        Clone a failed task into a new queued task.

        Returns:
            Optional[Task]: The new task, or None if the source is missing or not failed
        """
        with self.lock:
            source = self.tasks.get(task_id)
            if source is None or source.status != TaskStatus.FAILED:
                return None
            return self.create(
                app_id=source.app_id,
                action=source.action,
                actor=actor,
                message=f"Queued: retry {source.action.value}",
                options=source.options,
                retried_from=source.id,
            )
