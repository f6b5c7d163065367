"""
Task model for the NAS App Orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from nas_orcha.models.enums import TaskAction, TaskStatus
from nas_orcha.models.options import NoOptions, options_from_dict


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class Task:
    """
    A durable record of one orchestration request and its asynchronous execution.
    """
    id: int
    app_id: str
    action: TaskAction
    actor: str
    status: TaskStatus = TaskStatus.QUEUED
    progress: int = 0
    message: str = ""
    error_detail: Optional[str] = None
    log_text: str = ""
    options: Any = field(default_factory=NoOptions)
    retried_from: Optional[int] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    finished_at: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert task to its JSON representation."""
        return {
            'id': self.id,
            'app_id': self.app_id,
            'action': self.action.value,
            'status': self.status.value,
            'progress': self.progress,
            'message': self.message,
            'error_detail': self.error_detail,
            'log_text': self.log_text,
            'options': self.options.to_dict(),
            'actor': self.actor,
            'retried_from': self.retried_from,
            'created_at': self.created_at,
            'updated_at': self.updated_at,
            'finished_at': self.finished_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Task':
        """Rebuild a task from :meth:`to_dict` output."""
        action = TaskAction(data['action'])
        return cls(
            id=int(data['id']),
            app_id=data['app_id'],
            action=action,
            actor=data.get('actor') or 'system',
            status=TaskStatus(data.get('status', TaskStatus.QUEUED.value)),
            progress=int(data.get('progress', 0)),
            message=data.get('message') or "",
            error_detail=data.get('error_detail'),
            log_text=data.get('log_text') or "",
            options=options_from_dict(action, data.get('options'), app_id=data['app_id']),
            retried_from=data.get('retried_from'),
            created_at=data.get('created_at') or utc_now(),
            updated_at=data.get('updated_at') or utc_now(),
            finished_at=data.get('finished_at'),
        )
