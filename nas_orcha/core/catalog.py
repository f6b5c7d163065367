"""
Static catalog of managed applications and bundles.

The tables are built once at import time and exposed read-only.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Optional, Tuple

from nas_orcha.errors import UnsupportedApplication, UnsupportedBundle


@dataclass(frozen=True)
class ReadinessCheck:
    """How to decide that an application is usable after it starts."""
    kind: str = "runtime"            # "http" or "runtime"
    port: Optional[int] = None       # fixed container port
    port_key: Optional[str] = None   # integration setting holding the port
    paths: Tuple[str, ...] = ("/",)
    timeout: float = 90.0


@dataclass(frozen=True)
class ApplicationDefinition:
    """Container blueprint metadata for one managed application."""
    id: str
    name: str
    container_name: str
    image: str
    category: str
    description: str
    open_port_key: Optional[str] = None
    open_path: str = "/"
    data_dir: Optional[str] = None
    base_url_key: Optional[str] = None   # integration setting backfilled after install
    readiness: ReadinessCheck = ReadinessCheck()


@dataclass(frozen=True)
class Bundle:
    """A named, ordered set of applications installed together."""
    id: str
    name: str
    apps: Tuple[str, ...]

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'apps': list(self.apps)}


APPLICATIONS = MappingProxyType({
    "jellyfin": ApplicationDefinition(
        id="jellyfin",
        name="Jellyfin",
        container_name="nas-jellyfin",
        image="jellyfin/jellyfin:latest",
        category="Media",
        description="Media library management and streaming",
        open_port_key="jellyfinHostPort",
        data_dir="jellyfin",
        base_url_key="jellyfinBaseUrl",
        readiness=ReadinessCheck(kind="http", port=8096,
                                 paths=("/health", "/web/index.html", "/"), timeout=120.0),
    ),
    "qbittorrent": ApplicationDefinition(
        id="qbittorrent",
        name="qBittorrent",
        container_name="nas-qbittorrent",
        image="lscr.io/linuxserver/qbittorrent:latest",
        category="Downloads",
        description="BitTorrent downloads and seeding",
        open_port_key="qbWebPort",
        data_dir="qbittorrent",
        base_url_key="qbBaseUrl",
        readiness=ReadinessCheck(kind="http", port_key="qbWebPort",
                                 paths=("/api/v2/app/version", "/"), timeout=90.0),
    ),
    "portainer": ApplicationDefinition(
        id="portainer",
        name="Portainer",
        container_name="nas-portainer",
        image="portainer/portainer-ce:latest",
        category="Operations",
        description="Visual container management",
        open_port_key="portainerHostPort",
        data_dir="portainer",
        readiness=ReadinessCheck(kind="http", port=9000,
                                 paths=("/api/status", "/"), timeout=90.0),
    ),
    "watchtower": ApplicationDefinition(
        id="watchtower",
        name="Watchtower",
        container_name="nas-watchtower",
        image="containrrr/watchtower:latest",
        category="Operations",
        description="Automatic container image updates",
        open_path="",
        readiness=ReadinessCheck(kind="runtime"),
    ),
})

BUNDLES = MappingProxyType({
    "media-stack": Bundle(
        id="media-stack",
        name="Media Stack",
        apps=("jellyfin", "qbittorrent", "watchtower"),
    ),
})

DEFAULT_BUNDLE = "media-stack"


def resolve_app(app_id: str) -> ApplicationDefinition:
    """Look up an application, raising UnsupportedApplication if unknown."""
    try:
        return APPLICATIONS[app_id]
    except (KeyError, TypeError):
        raise UnsupportedApplication(app_id) from None


def resolve_bundle(bundle_id: str) -> Bundle:
    """Look up a bundle, raising UnsupportedBundle if unknown."""
    try:
        return BUNDLES[bundle_id]
    except (KeyError, TypeError):
        raise UnsupportedBundle(bundle_id) from None


def is_bundle(target_id: str) -> bool:
    return target_id in BUNDLES


def list_apps() -> List[ApplicationDefinition]:
    return list(APPLICATIONS.values())


def list_bundles() -> List[Bundle]:
    return list(BUNDLES.values())
