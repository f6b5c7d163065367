"""
Configuration for the NAS App Orchestrator.

Settings come from an optional YAML file and a handful of environment
variables. Environment variables win over the file.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger('nas_orchestrator.config')

CONFIG_ENV = 'NAS_ORCHESTRATOR_CONFIG'
STATE_DIR_ENV = 'NAS_ORCHESTRATOR_STATE_DIR'

DEFAULT_INTEGRATIONS = {
    "dockerDataPath": "./data/docker",
    "mediaPath": "./data/media",
    "downloadsPath": "./data/downloads",
    "jellyfinHostPort": 8096,
    "qbWebPort": 8080,
    "qbPeerPort": 6881,
    "portainerHostPort": 9000,
    "watchtowerInterval": 86400,
    "jellyfinBaseUrl": "",
    "jellyfinApiKey": "",
    "jellyfinUserId": "",
    "qbBaseUrl": "",
    "qbUsername": "",
    "qbPassword": "",
}


@dataclass
class OrchestratorConfig:
    """Process-wide orchestrator settings."""
    state_dir: str = "./orchestrator_state"
    docker_host: str = "unix:///var/run/docker.sock"
    internal_network: str = "nas-internal"
    label_prefix: str = "nasorcha"
    timezone: str = "Etc/UTC"
    docker_proxy_url: str = "http://docker-proxy:2375"
    public_host: str = "127.0.0.1"
    container_ready_timeout: float = 30.0
    http_ready_interval: float = 1.5
    serialize_per_app: bool = False
    integrations: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_INTEGRATIONS))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OrchestratorConfig':
        """Build a config from the parsed YAML document."""
        config = cls()
        for key in ('state_dir', 'docker_host', 'internal_network', 'label_prefix',
                    'timezone', 'docker_proxy_url', 'public_host'):
            if data.get(key) is not None:
                setattr(config, key, str(data[key]))

        for key in ('container_ready_timeout', 'http_ready_interval'):
            if data.get(key) is not None:
                setattr(config, key, float(data[key]))

        scheduler = data.get('scheduler') or {}
        if 'serialize_per_app' in scheduler:
            config.serialize_per_app = bool(scheduler['serialize_per_app'])

        integrations = data.get('integrations') or {}
        if not isinstance(integrations, dict):
            raise ValueError("'integrations' must be a mapping")
        config.integrations.update(integrations)
        return config


def load_config(path: Optional[str] = None) -> OrchestratorConfig:
    """
    Load the orchestrator configuration.

    Args:
        path: YAML file to read. Falls back to ``$NAS_ORCHESTRATOR_CONFIG``;
            a missing file means "all defaults".

    Returns:
        OrchestratorConfig: The merged configuration
    """
    path = path or os.environ.get(CONFIG_ENV)
    data = {}
    if path:
        if os.path.exists(path):
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"Config file {path} must contain a mapping")
            logger.info(f"Loaded configuration from {path}")
        else:
            logger.warning(f"Config file {path} not found, using defaults")

    config = OrchestratorConfig.from_dict(data)

    if os.environ.get(STATE_DIR_ENV):
        config.state_dir = os.environ[STATE_DIR_ENV]
    if os.environ.get('DOCKER_HOST'):
        config.docker_host = os.environ['DOCKER_HOST']
    if os.environ.get('TZ'):
        config.timezone = os.environ['TZ']

    return config
