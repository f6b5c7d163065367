"""
Append-only audit trail of orchestration outcomes.
"""

import os
import json
import logging
import threading
from collections import deque
from typing import Dict, List, Optional

from nas_orcha.models.task import utc_now


logger = logging.getLogger('nas_orchestrator.audit')

AUDIT_FILE = "audit.jsonl"


class AuditLog:
    """Writes ``(action, actor, target, status, detail, timestamp)`` records."""

    def __init__(self, state_dir: Optional[str] = None, keep_in_memory: int = 1000):
        self.state_dir = state_dir
        self.recent = deque(maxlen=keep_in_memory)
        self.lock = threading.Lock()

        if self.state_dir:
            os.makedirs(self.state_dir, exist_ok=True)
            if os.path.exists(self._path()):
                with open(self._path(), 'r') as f:
                    for line in f:
                        if line.strip():
                            self.recent.append(json.loads(line))

    def _path(self) -> str:
        return os.path.join(self.state_dir, AUDIT_FILE)

    def write(self, action: str, actor: str = "system", target: str = "",
              status: str = "ok", detail: str = "") -> Dict:
        record = {
            'action': action,
            'actor': actor or "system",
            'target': target,
            'status': status,
            'detail': detail,
            'created_at': utc_now(),
        }
        with self.lock:
            if self.state_dir:
                with open(self._path(), 'a') as f:
                    f.write(json.dumps(record) + "\n")
            self.recent.append(record)
        logger.info(f"Audit {action} {target} by {record['actor']}: {status}")
        return record

    def list_recent(self, limit: int = 200) -> List[Dict]:
        """Newest records first."""
        with self.lock:
            records = list(self.recent)
        return list(reversed(records))[:max(0, int(limit))]
