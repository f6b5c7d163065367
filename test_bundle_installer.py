#!/usr/bin/env python3
"""
Test Suite for bundle installation

Member installs are simulated by a fake Docker manager that reports the
usual install checkpoints through the progress reporter it receives.

Usage:
  pytest test_bundle_installer.py
"""

import threading
import unittest
import pytest
from unittest.mock import MagicMock

from nas_orcha.core.bundle import BundleInstaller, member_progress
from nas_orcha.core.catalog import Bundle
from nas_orcha.core.progress import ProgressReporter
from nas_orcha.core.scheduler import TaskScheduler
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import UpstreamError
from nas_orcha.models.enums import TaskAction
from nas_orcha.models.options import BundleOptions, InstallOptions


INSTALL_CHECKPOINTS = (12, 24, 50, 70, 84)


class RecordingStore(TaskStore):
    """Task store remembering every stored progress value."""

    def __init__(self):
        super().__init__()
        self.history = []

    def update(self, task_id, **fields):
        task = super().update(task_id, **fields)
        self.history.append(task.progress)
        return task


class TestBundleInstaller(unittest.TestCase):
    """Test cases for BundleInstaller"""

    def setUp(self):
        self.store = RecordingStore()
        self.bundle = Bundle(id="trio", name="Trio", apps=("jellyfin", "qbittorrent", "watchtower"))
        self.task = self.store.create("trio", TaskAction.INSTALL_BUNDLE, "alice",
                                      options=BundleOptions("trio", self.bundle.apps))
        self.store.mark_running(self.task.id, 5, "Installing bundle Trio")
        self.progress = ProgressReporter(self.store, self.task.id)
        self.installed_already = {"qbittorrent"}

        self.docker_manager = MagicMock()
        self.docker_manager.install.side_effect = self.fake_install

    def fake_install(self, app_id, task_id, progress, options):
        if options.skip_if_installed and app_id in self.installed_already:
            progress.log(f"{app_id} is already installed, skipping")
            return {'ok': True, 'appId': app_id, 'skipped': True}
        for checkpoint in INSTALL_CHECKPOINTS:
            progress.step(checkpoint, f"checkpoint {checkpoint}")
        return {'ok': True, 'appId': app_id, 'skipped': False}

    @pytest.mark.timeout(5)
    def test_member_progress_ranges(self):
        self.assertEqual(member_progress(0, 3), (10, 36))
        self.assertEqual(member_progress(1, 3), (36, 63))
        self.assertEqual(member_progress(2, 3), (63, 90))
        self.assertEqual(member_progress(0, 1), (10, 90))

    @pytest.mark.timeout(5)
    def test_installed_and_skipped_members(self):
        result = BundleInstaller(self.docker_manager).install(self.bundle, self.task.id, self.progress)

        self.assertEqual(result['installed'], ["jellyfin", "watchtower"])
        self.assertEqual(result['skipped'], ["qbittorrent"])
        self.assertEqual(result['bundleId'], "trio")

        for call in self.docker_manager.install.call_args_list:
            self.assertEqual(call.args[3], InstallOptions(skip_if_installed=True))

    @pytest.mark.timeout(5)
    def test_progress_never_moves_backwards(self):
        BundleInstaller(self.docker_manager).install(self.bundle, self.task.id, self.progress)

        history = self.store.history
        self.assertEqual(history, sorted(history))
        self.assertEqual(history[-1], 96)
        self.assertEqual(self.store.get(self.task.id).progress, 96)

    @pytest.mark.timeout(5)
    def test_member_messages_are_prefixed(self):
        BundleInstaller(self.docker_manager).install(self.bundle, self.task.id, self.progress)

        logs = self.store.get_logs(self.task.id)
        self.assertIn("Bundle members: jellyfin, qbittorrent, watchtower", logs)
        self.assertIn("installed: jellyfin, watchtower; skipped: qbittorrent", logs)

    @pytest.mark.timeout(5)
    def test_member_failure_aborts_rest(self):
        def failing_install(app_id, task_id, progress, options):
            if app_id == "qbittorrent":
                raise UpstreamError("pulling image lscr.io/linuxserver/qbittorrent:latest failed: timeout")
            return self.fake_install(app_id, task_id, progress, options)

        self.installed_already = set()
        self.docker_manager.install.side_effect = failing_install

        with self.assertRaises(UpstreamError):
            BundleInstaller(self.docker_manager).install(self.bundle, self.task.id, self.progress)

        installed = [call.args[0] for call in self.docker_manager.install.call_args_list]
        self.assertEqual(installed, ["jellyfin", "qbittorrent"])

    @pytest.mark.timeout(10)
    def test_member_install_waits_for_member_lock(self):
        scheduler = TaskScheduler(self.store, MagicMock(), serialize_per_app=True)
        installer = BundleInstaller(self.docker_manager, scheduler.app_lock)
        self.installed_already = set()
        outcome = {}

        def run():
            outcome['result'] = installer.install(self.bundle, self.task.id, self.progress)

        member_lock = scheduler.app_lock("qbittorrent")
        member_lock.acquire()
        worker = threading.Thread(target=run, daemon=True)
        try:
            worker.start()
            worker.join(0.3)
            self.assertTrue(worker.is_alive())
            installed = [call.args[0] for call in self.docker_manager.install.call_args_list]
            self.assertEqual(installed, ["jellyfin"])
        finally:
            member_lock.release()

        worker.join(5)
        self.assertFalse(worker.is_alive())
        self.assertEqual(outcome['result']['installed'], ["jellyfin", "qbittorrent", "watchtower"])

    @pytest.mark.timeout(5)
    def test_member_lock_is_a_no_op_by_default(self):
        installer = BundleInstaller(self.docker_manager)
        with installer.member_lock("jellyfin"):
            pass
        self.assertEqual(installer.install(self.bundle, self.task.id, self.progress)['skipped'],
                         ["qbittorrent"])


if __name__ == '__main__':
    unittest.main()
