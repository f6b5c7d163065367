"""
Enumeration classes for the NAS App Orchestrator.
"""

from enum import Enum


class TaskAction(str, Enum):
    """Actions a task can carry out."""
    INSTALL = "install"
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    UNINSTALL = "uninstall"
    INSTALL_BUNDLE = "install_bundle"


# Actions that target a single application (everything but bundles).
APP_ACTIONS = (
    TaskAction.INSTALL,
    TaskAction.START,
    TaskAction.STOP,
    TaskAction.RESTART,
    TaskAction.UNINSTALL,
)


class TaskStatus(str, Enum):
    """Possible states for a task."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.SUCCESS, TaskStatus.FAILED)


# Allowed forward moves. A task that dies before its first step goes
# straight from queued to failed.
STATUS_TRANSITIONS = {
    TaskStatus.QUEUED: (TaskStatus.RUNNING, TaskStatus.FAILED),
    TaskStatus.RUNNING: (TaskStatus.RUNNING, TaskStatus.SUCCESS, TaskStatus.FAILED),
    TaskStatus.SUCCESS: (),
    TaskStatus.FAILED: (),
}
