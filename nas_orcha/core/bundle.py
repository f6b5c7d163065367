"""
Sequential installation of application bundles.
"""

import logging
from contextlib import nullcontext
from typing import Any, Dict

from nas_orcha.core.catalog import Bundle
from nas_orcha.core.progress import ProgressReporter
from nas_orcha.models.options import InstallOptions


logger = logging.getLogger('nas_orchestrator.bundle')

BUNDLE_PROGRESS_START = 10
BUNDLE_PROGRESS_SPAN = 80


def member_progress(index: int, total: int):
    """Progress before and after member ``index`` of ``total``."""
    before = BUNDLE_PROGRESS_START + (index * BUNDLE_PROGRESS_SPAN) // total
    after = BUNDLE_PROGRESS_START + ((index + 1) * BUNDLE_PROGRESS_SPAN) // total
    return before, after


class BundleInstaller:
    """
    Installs the members of a bundle one after another.

    Members that are already installed are skipped. The first failing member
    aborts the rest; members installed before it stay installed.

    ``member_lock(app_id)`` returns the context each member install runs
    under; the scheduler passes its per-app lock here.
    """
    def __init__(self, docker_manager, member_lock=None):
        self.docker_manager = docker_manager
        self.member_lock = member_lock or (lambda app_id: nullcontext())

    def install(self, bundle: Bundle, task_id: int, progress: ProgressReporter) -> Dict[str, Any]:
        installed = []
        skipped = []
        total = len(bundle.apps)
        progress.log(f"Bundle members: {', '.join(bundle.apps)}")

        for index, app_id in enumerate(bundle.apps):
            before, after = member_progress(index, total)
            progress.step(before, f"Installing {app_id} ({index + 1}/{total})")
            progress.log(f"Installing bundle member {app_id}")

            with self.member_lock(app_id):
                result = self.docker_manager.install(
                    app_id,
                    task_id,
                    progress.sub_range(before, after, prefix=app_id),
                    InstallOptions(skip_if_installed=True),
                )
            if result.get('skipped'):
                skipped.append(app_id)
            else:
                installed.append(app_id)
            progress.step(after, f"{app_id} processed")

        progress.step(96, "Bundle installation finished")
        progress.log(
            f"Bundle installation finished, installed: {', '.join(installed) or 'none'}; "
            f"skipped: {', '.join(skipped) or 'none'}"
        )
        logger.info(f"Bundle {bundle.id} done: installed={installed} skipped={skipped}")
        return {'ok': True, 'bundleId': bundle.id, 'installed': installed, 'skipped': skipped,
                'message': f"{bundle.name} installed"}
