"""
Coarse progress reporting for running tasks.
"""

from nas_orcha.core.task_store import TaskStore


class ProgressReporter:
    """
    Writes progress checkpoints of one task.

    A step's 0-100 checkpoints are mapped onto ``[low, high]`` of the task's
    own progress, so a sub-step (one member of a bundle) can report its usual
    checkpoints without moving the parent task backwards.
    """
    def __init__(self, store: TaskStore, task_id: int, low: int = 0, high: int = 100,
                 prefix: str = ""):
        self.store = store
        self.task_id = task_id
        self.low = low
        self.high = high
        self.prefix = prefix

    def scale(self, percent: int) -> int:
        return self.low + (self.high - self.low) * percent // 100

    def step(self, percent: int, message: str):
        if self.prefix:
            message = f"{self.prefix}: {message}"
        self.store.update(self.task_id, progress=self.scale(percent), message=message)

    def log(self, line: str):
        self.store.append_log(self.task_id, line)

    def sub_range(self, low: int, high: int, prefix: str = "") -> 'ProgressReporter':
        """A reporter covering ``[low, high]`` of this task's progress."""
        return ProgressReporter(self.store, self.task_id, self.scale(low), self.scale(high), prefix)
