#!/usr/bin/env python3
"""
Test Suite for configuration, integration settings and the audit log

Usage:
  pytest test_config.py
"""

import os
import json
import shutil
import tempfile
import unittest
import pytest
from unittest.mock import patch

from nas_orcha.config import load_config, DEFAULT_INTEGRATIONS
from nas_orcha.core.audit import AuditLog
from nas_orcha.core.settings import IntegrationSettings, SETTINGS_FILE


class TestConfig(unittest.TestCase):
    """Test cases for configuration loading"""

    def setUp(self):
        self.root = tempfile.mkdtemp(prefix="nas-orcha-config-")

    def tearDown(self):
        shutil.rmtree(self.root, ignore_errors=True)

    def write_config(self, text):
        path = os.path.join(self.root, "orchestrator.yaml")
        with open(path, 'w') as f:
            f.write(text)
        return path

    @pytest.mark.timeout(5)
    @patch.dict('os.environ', {}, clear=True)
    def test_defaults_without_file(self):
        config = load_config(os.path.join(self.root, "missing.yaml"))

        self.assertEqual(config.internal_network, "nas-internal")
        self.assertFalse(config.serialize_per_app)
        self.assertEqual(config.integrations["qbWebPort"], 8080)

    @pytest.mark.timeout(5)
    @patch.dict('os.environ', {}, clear=True)
    def test_yaml_file(self):
        path = self.write_config(
            "state_dir: /srv/orchestrator\n"
            "http_ready_interval: 0.5\n"
            "scheduler:\n"
            "  serialize_per_app: true\n"
            "integrations:\n"
            "  qbWebPort: 8181\n"
        )

        config = load_config(path)

        self.assertEqual(config.state_dir, "/srv/orchestrator")
        self.assertEqual(config.http_ready_interval, 0.5)
        self.assertTrue(config.serialize_per_app)
        self.assertEqual(config.integrations["qbWebPort"], 8181)
        self.assertEqual(config.integrations["jellyfinHostPort"], 8096)

    @pytest.mark.timeout(5)
    def test_environment_wins(self):
        path = self.write_config("state_dir: /srv/orchestrator\n")
        env = {'NAS_ORCHESTRATOR_STATE_DIR': '/tmp/state', 'TZ': 'Europe/Berlin'}

        with patch.dict('os.environ', env, clear=True):
            config = load_config(path)

        self.assertEqual(config.state_dir, "/tmp/state")
        self.assertEqual(config.timezone, "Europe/Berlin")

    @pytest.mark.timeout(5)
    @patch.dict('os.environ', {}, clear=True)
    def test_non_mapping_file_is_rejected(self):
        path = self.write_config("- just\n- a list\n")
        with self.assertRaises(ValueError):
            load_config(path)


class TestIntegrationSettings(unittest.TestCase):
    """Test cases for IntegrationSettings"""

    def setUp(self):
        self.state_dir = tempfile.mkdtemp(prefix="nas-orcha-settings-")

    def tearDown(self):
        shutil.rmtree(self.state_dir, ignore_errors=True)

    @pytest.mark.timeout(5)
    def test_saved_values_override_defaults(self):
        settings = IntegrationSettings(DEFAULT_INTEGRATIONS, self.state_dir)

        written = settings.save({"qbBaseUrl": "http://nas-qbittorrent:8080", "bogus": 1})

        self.assertEqual(written, {"qbBaseUrl": "http://nas-qbittorrent:8080"})
        reloaded = IntegrationSettings(DEFAULT_INTEGRATIONS, self.state_dir)
        self.assertEqual(reloaded.get("qbBaseUrl"), "http://nas-qbittorrent:8080")
        self.assertIsNone(reloaded.get("bogus"))

        with open(os.path.join(self.state_dir, SETTINGS_FILE)) as f:
            self.assertNotIn("bogus", json.load(f))


class TestAuditLog(unittest.TestCase):
    """Test cases for AuditLog"""

    def setUp(self):
        self.state_dir = tempfile.mkdtemp(prefix="nas-orcha-audit-")

    def tearDown(self):
        shutil.rmtree(self.state_dir, ignore_errors=True)

    @pytest.mark.timeout(5)
    def test_records_persist_newest_first(self):
        audit = AuditLog(self.state_dir)
        audit.write("app_install", actor="alice", target="jellyfin", status="ok", detail="{}")
        audit.write("app_stop", actor="", target="jellyfin", status="failed", detail="boom")

        records = AuditLog(self.state_dir).list_recent()
        self.assertEqual([r['action'] for r in records], ["app_stop", "app_install"])
        self.assertEqual(records[0]['actor'], "system")
        self.assertEqual(len(AuditLog(self.state_dir).list_recent(1)), 1)


if __name__ == '__main__':
    unittest.main()
