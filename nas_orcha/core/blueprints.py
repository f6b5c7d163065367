"""
Container creation blueprints, one per managed application.

Each blueprint returns keyword arguments for
``docker.DockerClient.containers.create``. Host directories used as bind
mounts are created on demand.
"""

import os
from typing import Any, Callable, Dict

from nas_orcha.config import OrchestratorConfig
from nas_orcha.core.catalog import ApplicationDefinition
from nas_orcha.errors import UnsupportedApplication


def normalize_host_path(path: Any) -> str:
    return os.path.abspath(str(path or "").strip())


def ensure_dir(path: str) -> str:
    os.makedirs(path, exist_ok=True)
    return path


def app_data_dir(app: ApplicationDefinition, settings: Dict[str, Any]) -> str:
    """Host directory holding the application's persistent data, or ''."""
    if not app.data_dir:
        return ""
    return os.path.join(normalize_host_path(settings.get("dockerDataPath")), app.data_dir)


def common_options(app: ApplicationDefinition, config: OrchestratorConfig) -> Dict[str, Any]:
    """Options shared by every managed container."""
    return {
        "image": app.image,
        "name": app.container_name,
        "restart_policy": {"Name": "unless-stopped"},
        "network": config.internal_network,
        "labels": {
            f"{config.label_prefix}.managed": "true",
            f"{config.label_prefix}.app": app.id,
        },
    }


def jellyfin_options(app, settings, config):
    data_dir = app_data_dir(app, settings)
    config_dir = ensure_dir(os.path.join(data_dir, "config"))
    cache_dir = ensure_dir(os.path.join(data_dir, "cache"))
    media_path = ensure_dir(normalize_host_path(settings.get("mediaPath")))

    options = common_options(app, config)
    options.update({
        "volumes": [f"{config_dir}:/config", f"{cache_dir}:/cache", f"{media_path}:/media"],
        "ports": {"8096/tcp": int(settings["jellyfinHostPort"])},
    })
    return options


def qbittorrent_options(app, settings, config):
    config_dir = ensure_dir(os.path.join(app_data_dir(app, settings), "config"))
    downloads_path = ensure_dir(normalize_host_path(settings.get("downloadsPath")))
    web_port = int(settings["qbWebPort"])
    peer_port = int(settings["qbPeerPort"])

    options = common_options(app, config)
    options.update({
        "environment": [
            f"TZ={config.timezone}",
            "PUID=0",
            "PGID=0",
            f"WEBUI_PORT={web_port}",
            f"TORRENTING_PORT={peer_port}",
        ],
        "volumes": [f"{config_dir}:/config", f"{downloads_path}:/downloads"],
        "ports": {
            f"{web_port}/tcp": web_port,
            f"{peer_port}/tcp": peer_port,
            f"{peer_port}/udp": peer_port,
        },
    })
    return options


def portainer_options(app, settings, config):
    data_dir = ensure_dir(os.path.join(app_data_dir(app, settings), "data"))

    options = common_options(app, config)
    options.update({
        "volumes": ["/var/run/docker.sock:/var/run/docker.sock", f"{data_dir}:/data"],
        "ports": {"9000/tcp": int(settings["portainerHostPort"])},
    })
    return options


def watchtower_options(app, settings, config):
    interval = str(settings["watchtowerInterval"])
    proxy = config.docker_proxy_url.replace("http://", "tcp://", 1)

    options = common_options(app, config)
    options.update({
        "environment": [
            f"TZ={config.timezone}",
            f"WATCHTOWER_POLL_INTERVAL={interval}",
            "WATCHTOWER_CLEANUP=true",
            "WATCHTOWER_LABEL_ENABLE=false",
            f"DOCKER_HOST={proxy}",
        ],
        "command": ["--cleanup", "--interval", interval],
    })
    return options


BLUEPRINTS: Dict[str, Callable[..., Dict[str, Any]]] = {
    "jellyfin": jellyfin_options,
    "qbittorrent": qbittorrent_options,
    "portainer": portainer_options,
    "watchtower": watchtower_options,
}


def build_create_options(app: ApplicationDefinition, settings: Dict[str, Any],
                         config: OrchestratorConfig) -> Dict[str, Any]:
    """Build the ``containers.create`` arguments for ``app``."""
    blueprint = BLUEPRINTS.get(app.id)
    if blueprint is None:
        raise UnsupportedApplication(app.id)
    return blueprint(app, settings, config)
