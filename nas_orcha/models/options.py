"""
Typed task options.

Each action carries its own options variant. On the wire and on disk the
options keep the plain camelCase JSON object shape (``{"removeData": true}``,
``{"bundleId": ..., "apps": [...]}``).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from nas_orcha.models.enums import TaskAction


@dataclass(frozen=True)
class NoOptions:
    """Options for start, stop and restart."""

    def to_dict(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class InstallOptions:
    """Options for install."""
    skip_if_installed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.skip_if_installed:
            return {"skipIfInstalled": True}
        return {}


@dataclass(frozen=True)
class UninstallOptions:
    """Options for uninstall."""
    remove_data: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"removeData": self.remove_data}


@dataclass(frozen=True)
class BundleOptions:
    """Options for install_bundle: the bundle and its member list at creation time."""
    bundle_id: str
    apps: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"bundleId": self.bundle_id, "apps": list(self.apps)}


def _flag(data: Dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def options_from_dict(action: TaskAction, data: Optional[Dict[str, Any]], app_id: str = None):
    """
    Parse the boundary JSON object into the options variant for ``action``.

    Args:
        action: The task action
        data: Raw options (may be None)
        app_id: Task target, used as the bundle id fallback for bundle tasks

    Returns:
        The typed options object
    """
    data = data or {}
    if not isinstance(data, dict):
        raise TypeError("task options must be a JSON object")

    if action == TaskAction.INSTALL:
        return InstallOptions(skip_if_installed=_flag(data, "skipIfInstalled"))
    if action == TaskAction.UNINSTALL:
        return UninstallOptions(remove_data=_flag(data, "removeData"))
    if action == TaskAction.INSTALL_BUNDLE:
        bundle_id = data.get("bundleId") or app_id
        if not bundle_id:
            raise ValueError("bundle options require a bundleId")
        return BundleOptions(bundle_id=str(bundle_id), apps=tuple(data.get("apps") or ()))
    return NoOptions()
