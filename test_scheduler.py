#!/usr/bin/env python3
"""
Test Suite for the task scheduler

Usage:
  pytest test_scheduler.py
"""

import errno
import json
import threading
import unittest
import pytest
from unittest.mock import MagicMock, patch

from nas_orcha.core.scheduler import TaskScheduler
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import UpstreamError
from nas_orcha.models.enums import TaskAction, TaskStatus


class TestTaskScheduler(unittest.TestCase):
    """Test cases for TaskScheduler"""

    def setUp(self):
        self.store = TaskStore()
        self.audit = MagicMock()
        self.scheduler = TaskScheduler(self.store, self.audit)

    def running_executor(self, task, result=None, gate=None, started=None):
        def run():
            self.store.mark_running(task.id, 20, "Running")
            if started is not None:
                started.set()
            if gate is not None:
                gate.wait(5)
            return result or {'ok': True, 'message': f"{task.app_id} done"}
        return run

    @pytest.mark.timeout(10)
    def test_success_marks_task_and_audits(self):
        task = self.store.create("jellyfin", TaskAction.START, "alice")

        self.assertTrue(self.scheduler.dispatch(task, self.running_executor(task), "app_start"))
        self.assertTrue(self.scheduler.join(task.id, 5))

        done = self.store.get(task.id)
        self.assertEqual(done.status, TaskStatus.SUCCESS)
        self.assertEqual(done.progress, 100)
        self.assertEqual(done.message, "jellyfin done")
        self.assertIn("Task finished", done.log_text)

        kwargs = self.audit.write.call_args.kwargs
        self.assertEqual(kwargs['action'], "app_start")
        self.assertEqual(kwargs['actor'], "alice")
        self.assertEqual(kwargs['target'], "jellyfin")
        self.assertEqual(kwargs['status'], "ok")
        self.assertEqual(json.loads(kwargs['detail'])['message'], "jellyfin done")

    @pytest.mark.timeout(10)
    def test_failure_is_captured(self):
        task = self.store.create("jellyfin", TaskAction.START, "alice")

        def explode():
            self.store.mark_running(task.id, 20, "Running start")
            raise UpstreamError("Jellyfin readiness check failed: HTTP 503")

        self.scheduler.dispatch(task, explode, "app_start")
        self.assertTrue(self.scheduler.join(task.id, 5))

        failed = self.store.get(task.id)
        self.assertEqual(failed.status, TaskStatus.FAILED)
        self.assertEqual(failed.error_detail, "Jellyfin readiness check failed: HTTP 503")
        self.assertIn("Failed: Jellyfin readiness check failed: HTTP 503", failed.log_text)
        self.assertEqual(self.audit.write.call_args.kwargs['status'], "failed")
        self.assertFalse(self.scheduler.is_in_flight(task.id))

    @pytest.mark.timeout(10)
    def test_failure_before_first_step(self):
        task = self.store.create("media-stack", TaskAction.INSTALL_BUNDLE, "alice")

        def explode():
            raise KeyError("bundle")

        self.scheduler.dispatch(task, explode, "app_bundle_install")
        self.scheduler.join(task.id, 5)

        self.assertEqual(self.store.get(task.id).status, TaskStatus.FAILED)

    @pytest.mark.timeout(10)
    def test_double_dispatch_runs_once(self):
        task = self.store.create("jellyfin", TaskAction.RESTART, "alice")
        gate = threading.Event()
        executor = MagicMock(side_effect=self.running_executor(task, gate=gate))
        barrier = threading.Barrier(2)
        results = []

        def fire():
            barrier.wait(5)
            results.append(self.scheduler.dispatch(task, executor, "app_restart"))

        callers = [threading.Thread(target=fire) for _ in range(2)]
        for caller in callers:
            caller.start()
        for caller in callers:
            caller.join(5)

        self.assertEqual(sorted(results), [False, True])
        self.assertTrue(self.scheduler.is_in_flight(task.id))

        gate.set()
        self.assertTrue(self.scheduler.join(task.id, 5))
        executor.assert_called_once()
        self.assertEqual(self.audit.write.call_count, 1)

    @pytest.mark.timeout(10)
    def test_full_disk_while_recording_outcome_still_audits(self):
        task = self.store.create("jellyfin", TaskAction.START, "alice")
        full_disk = patch.object(self.store, '_save_state',
                                 side_effect=OSError(errno.ENOSPC, "No space left on device"))

        def run():
            self.store.mark_running(task.id, 20, "Running start")
            full_disk.start()
            return {'ok': True, 'message': "Jellyfin started"}

        try:
            self.scheduler.dispatch(task, run, "app_start")
            self.assertTrue(self.scheduler.join(task.id, 5))
        finally:
            full_disk.stop()

        self.assertEqual(self.audit.write.call_count, 1)
        kwargs = self.audit.write.call_args.kwargs
        self.assertEqual(kwargs['status'], "failed")
        self.assertIn("No space left on device", kwargs['detail'])
        self.assertFalse(self.scheduler.is_in_flight(task.id))

    @pytest.mark.timeout(10)
    def test_audit_failure_does_not_leak_in_flight(self):
        task = self.store.create("jellyfin", TaskAction.STOP, "alice")
        self.audit.write.side_effect = OSError(errno.ENOSPC, "No space left on device")

        self.scheduler.dispatch(task, self.running_executor(task), "app_stop")

        self.assertTrue(self.scheduler.join(task.id, 5))
        self.assertEqual(self.store.get(task.id).status, TaskStatus.SUCCESS)
        self.assertFalse(self.scheduler.is_in_flight(task.id))

    @pytest.mark.timeout(10)
    def test_same_app_tasks_run_concurrently_by_default(self):
        first = self.store.create("jellyfin", TaskAction.STOP, "alice")
        second = self.store.create("jellyfin", TaskAction.START, "bob")
        gate = threading.Event()

        self.scheduler.dispatch(first, self.running_executor(first, gate=gate), "app_stop")
        self.scheduler.dispatch(second, self.running_executor(second), "app_start")

        self.assertTrue(self.scheduler.join(second.id, 5))
        self.assertEqual(self.store.get(second.id).status, TaskStatus.SUCCESS)
        self.assertTrue(self.scheduler.is_in_flight(first.id))

        gate.set()
        self.assertTrue(self.scheduler.wait_idle(5))

    @pytest.mark.timeout(10)
    def test_serialize_per_app(self):
        scheduler = TaskScheduler(self.store, self.audit, serialize_per_app=True)
        first = self.store.create("jellyfin", TaskAction.STOP, "alice")
        second = self.store.create("jellyfin", TaskAction.START, "bob")
        gate = threading.Event()
        started = threading.Event()

        scheduler.dispatch(first, self.running_executor(first, gate=gate, started=started), "app_stop")
        self.assertTrue(started.wait(5))
        scheduler.dispatch(second, self.running_executor(second), "app_start")

        self.assertFalse(scheduler.join(second.id, 0.3))
        self.assertEqual(self.store.get(second.id).status, TaskStatus.QUEUED)

        gate.set()
        self.assertTrue(scheduler.wait_idle(5))
        self.assertEqual(self.store.get(second.id).status, TaskStatus.SUCCESS)


if __name__ == '__main__':
    unittest.main()
