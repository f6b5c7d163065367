"""
Application task orchestrator.

Entry point used by the API layer: validates requests, creates task
records, hands them to the scheduler and exposes task inspection and retry.
"""

import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from nas_orcha.config import OrchestratorConfig
from nas_orcha.core import catalog
from nas_orcha.core.audit import AuditLog
from nas_orcha.core.bundle import BundleInstaller
from nas_orcha.core.docker_manager import DockerManager
from nas_orcha.core.progress import ProgressReporter
from nas_orcha.core.retry import RetryManager
from nas_orcha.core.scheduler import TaskScheduler
from nas_orcha.core.settings import IntegrationSettings
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import NotFoundError, UnsupportedAction, ValidationError
from nas_orcha.models.enums import APP_ACTIONS, TaskAction
from nas_orcha.models.options import BundleOptions, options_from_dict
from nas_orcha.models.task import Task


logger = logging.getLogger('nas_orchestrator')

DEFAULT_TASK_LIMIT = 60


class AppOrchestrator:
    """
    Turns application and bundle requests into supervised background tasks.
    """
    def __init__(self, config: OrchestratorConfig, store: TaskStore = None,
                 settings: IntegrationSettings = None, audit: AuditLog = None,
                 docker_manager: DockerManager = None, scheduler: TaskScheduler = None):
        self.config = config
        self.store = store or TaskStore(config.state_dir)
        self.settings = settings or IntegrationSettings(config.integrations, config.state_dir)
        self.audit = audit or AuditLog(config.state_dir)
        self.docker_manager = docker_manager or DockerManager(config, self.store, self.settings)
        self.scheduler = scheduler or TaskScheduler(self.store, self.audit, config.serialize_per_app)
        self.bundle_installer = BundleInstaller(self.docker_manager, self.scheduler.app_lock)
        self.retry_manager = RetryManager(self.store, self.dispatch)

        self.app_handlers: Dict[TaskAction, Callable[[Task], Dict[str, Any]]] = {
            TaskAction.INSTALL: self._run_install,
            TaskAction.START: partial(self._run_control, operation=self.docker_manager.start),
            TaskAction.STOP: partial(self._run_control, operation=self.docker_manager.stop),
            TaskAction.RESTART: partial(self._run_control, operation=self.docker_manager.restart),
            TaskAction.UNINSTALL: self._run_uninstall,
        }
        missing = set(APP_ACTIONS) - set(self.app_handlers)
        if missing:
            raise RuntimeError(f"No handler for actions: {sorted(a.value for a in missing)}")

    # Executors. Each runs on the task's worker thread.

    def _run_install(self, task: Task) -> Dict[str, Any]:
        self.store.mark_running(task.id, 8, "Checking installation state")
        progress = ProgressReporter(self.store, task.id)
        result = self.docker_manager.install(task.app_id, task.id, progress, task.options)
        if not result.get('skipped'):
            progress.step(96, "Installation validated")
        return result

    def _run_control(self, task: Task, operation) -> Dict[str, Any]:
        self.store.mark_running(task.id, 20, f"Running {task.action.value}")
        progress = ProgressReporter(self.store, task.id)
        result = operation(task.app_id, task.id, progress)
        progress.step(96, "Operation finished")
        return result

    def _run_uninstall(self, task: Task) -> Dict[str, Any]:
        self.store.mark_running(task.id, 10, "Uninstalling application")
        progress = ProgressReporter(self.store, task.id)
        result = self.docker_manager.uninstall(task.app_id, task.id, progress, task.options)
        progress.step(95, "Cleanup finished")
        return result

    def _run_bundle(self, task: Task) -> Dict[str, Any]:
        bundle = catalog.resolve_bundle(task.options.bundle_id)
        self.store.mark_running(task.id, 5, f"Installing bundle {bundle.name}")
        return self.bundle_installer.install(bundle, task.id, ProgressReporter(self.store, task.id))

    def dispatch(self, task: Task) -> bool:
        """Route a queued task to the bundle or single-application executor."""
        if task.action == TaskAction.INSTALL_BUNDLE:
            return self.scheduler.dispatch(task, lambda: self._run_bundle(task), "app_bundle_install")

        handler = self.app_handlers[task.action]
        return self.scheduler.dispatch(task, lambda: handler(task), f"app_{task.action.value}")

    # Exposed operations.

    def create_app_action_task(self, app_id: str, action: str, actor: str = "system",
                               options: Optional[Dict[str, Any]] = None) -> Task:
        """
        Validate and queue an action on one application.

        Raises:
            ValidationError: Unknown application, unknown action or malformed options.
                No task is created in that case.
        """
        catalog.resolve_app(app_id)
        try:
            task_action = TaskAction(action)
        except ValueError:
            raise UnsupportedAction(str(action)) from None
        if task_action not in APP_ACTIONS:
            raise UnsupportedAction(task_action.value)

        try:
            typed_options = options_from_dict(task_action, options, app_id=app_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid options for {task_action.value}: {str(e)}")

        task = self.store.create(
            app_id=app_id,
            action=task_action,
            actor=actor,
            message=f"Queued: {task_action.value}",
            options=typed_options,
        )
        self.store.append_log(task.id, f"Task created: {app_id} {task_action.value}")
        self.dispatch(task)
        return task

    def create_bundle_install_task(self, bundle_id: str = catalog.DEFAULT_BUNDLE,
                                   actor: str = "system") -> Task:
        bundle = catalog.resolve_bundle(bundle_id)
        task = self.store.create(
            app_id=bundle.id,
            action=TaskAction.INSTALL_BUNDLE,
            actor=actor,
            message=f"Queued: install {bundle.name}",
            options=BundleOptions(bundle_id=bundle.id, apps=bundle.apps),
        )
        self.store.append_log(task.id, f"Task created: bundle {bundle.id}")
        self.dispatch(task)
        return task

    def retry_task(self, task_id: int, actor: str = "system") -> Task:
        return self.retry_manager.retry(task_id, actor)

    def list_tasks(self, limit: int = DEFAULT_TASK_LIMIT) -> List[Task]:
        return self.store.list_recent(limit)

    def get_task(self, task_id: int) -> Task:
        task = self.store.get(task_id)
        if task is None:
            raise NotFoundError(f"Task #{task_id} not found")
        return task

    def get_task_logs(self, task_id: int) -> str:
        logs = self.store.get_logs(task_id)
        if logs is None:
            raise NotFoundError(f"Task #{task_id} not found")
        return logs

    def list_apps(self) -> List[Dict[str, Any]]:
        settings = self.settings.get_raw()
        return [self.docker_manager.app_status(app, settings) for app in catalog.list_apps()]

    def list_bundles(self) -> List[Dict[str, Any]]:
        return [bundle.to_dict() for bundle in catalog.list_bundles()]

    def list_audit(self, limit: int = 200) -> List[Dict[str, Any]]:
        return self.audit.list_recent(limit)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight tasks before the process exits."""
        logger.info("Waiting for in-flight tasks")
        return self.scheduler.wait_idle(timeout)
