"""
Docker Manager for the NAS App Orchestrator.

This module drives the container lifecycle of managed applications:
network provisioning, image pulls, container creation, start/stop/restart,
removal and data cleanup.
"""

import shutil
import logging
import threading
from typing import Any, Callable, Dict, Optional

from docker.errors import NotFound
from docker.utils import parse_repository_tag

from nas_orcha.config import OrchestratorConfig
from nas_orcha.core.blueprints import app_data_dir, build_create_options
from nas_orcha.core.catalog import ApplicationDefinition, resolve_app
from nas_orcha.core.progress import ProgressReporter
from nas_orcha.core.readiness import ReadinessProber
from nas_orcha.core.settings import IntegrationSettings
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import ConflictError, NotFoundError, UpstreamError
from nas_orcha.models.options import InstallOptions, UninstallOptions
from nas_orcha.utils.docker_utils import (
    container_state, find_container, get_client, is_already_exists, runtime_call, short_id,
)


logger = logging.getLogger('nas_orchestrator.docker')

STOP_GRACE_SECONDS = 10
PULL_LOG_PHASES = ("Pulling", "Downloading", "Extracting")


class DockerManager:
    """
    Manages the containers of catalog applications.
    """
    def __init__(self, config: OrchestratorConfig, store: TaskStore,
                 settings: IntegrationSettings, client=None,
                 prober: Optional[ReadinessProber] = None):
        """
        Initialize the Docker manager.

        Args:
            config: Orchestrator configuration
            store: Task store receiving logs and progress
            settings: Integration settings provider
            client: Docker client; connected lazily from ``config.docker_host`` when omitted
            prober: Readiness prober; built from the same client when omitted
        """
        self.config = config
        self.store = store
        self.settings = settings
        self._client = client
        self.lock = threading.RLock()
        self.prober = prober or ReadinessProber(lambda: self.client, store, config)

    @property
    def client(self):
        with self.lock:
            if self._client is None:
                self._client = get_client(self.config.docker_host)
                logger.info(f"Connected to Docker at {self.config.docker_host}")
            return self._client

    def find_container(self, app: ApplicationDefinition):
        with runtime_call(f"looking up container {app.container_name}"):
            return find_container(self.client, app.container_name)

    def _require_installed(self, app_id: str):
        app = resolve_app(app_id)
        container = self.find_container(app)
        if container is None:
            raise NotFoundError(f"{app.name} is not installed")
        return app, container

    def ensure_network(self, task_id: int):
        """Create the shared internal network unless it already exists."""
        name = self.config.internal_network
        try:
            with runtime_call(f"inspecting network {name}"):
                self.client.networks.get(name)
            self.store.append_log(task_id, f"Network check passed: {name}")
            return
        except UpstreamError as e:
            if not isinstance(e.__cause__, NotFound):
                raise

        self.store.append_log(task_id, f"Network {name} not found, creating it")
        try:
            with runtime_call(f"creating network {name}"):
                self.client.networks.create(
                    name,
                    driver="bridge",
                    labels={f"{self.config.label_prefix}.managed": "true"},
                )
            self.store.append_log(task_id, f"Network created: {name}")
        except UpstreamError as e:
            if not is_already_exists(e.__cause__):
                raise
            self.store.append_log(task_id, f"Network already exists: {name}")

    def pull_image(self, image: str, on_event: Callable[[Dict[str, Any]], None] = None):
        """
        Pull an image, streaming progress events to ``on_event``.

        Raises:
            UpstreamError: The pull failed or the registry reported an error
        """
        repository, tag = parse_repository_tag(image)
        with runtime_call(f"pulling image {image}"):
            for event in self.client.api.pull(repository, tag=tag or "latest",
                                              stream=True, decode=True):
                if event.get('error'):
                    raise UpstreamError(f"pulling image {image} failed: {event['error']}")
                if on_event:
                    on_event(event)
        logger.info(f"Pulled image {image}")

    def _pull_logger(self, task_id: int) -> Callable[[Dict[str, Any]], None]:
        def log_event(event: Dict[str, Any]):
            status = event.get('status') or ""
            if not any(phase in status for phase in PULL_LOG_PHASES):
                return
            detail = f" {event['progress']}" if event.get('progress') else ""
            self.store.append_log(task_id, f"{status}{detail}")
        return log_event

    def integration_backfill(self, app: ApplicationDefinition,
                             settings: Dict[str, Any]) -> Dict[str, Any]:
        """Endpoint settings that are still empty and can be derived from the new container."""
        if not app.base_url_key or settings.get(app.base_url_key):
            return {}
        check = app.readiness
        port = settings[check.port_key] if check.port_key else check.port
        return {app.base_url_key: f"http://{app.container_name}:{port}"}

    def install(self, app_id: str, task_id: int, progress: ProgressReporter,
                options: InstallOptions = None) -> Dict[str, Any]:
        """
        Install and start an application.

        Args:
            app_id: Catalog identifier
            task_id: Task receiving logs
            progress: Reporter for the install checkpoints
            options: ``skip_if_installed`` turns an existing container into a skip

        Returns:
            Dict[str, Any]: Outcome, with ``skipped`` set when nothing was done
        """
        options = options or InstallOptions()
        app = resolve_app(app_id)

        if self.find_container(app) is not None:
            if options.skip_if_installed:
                progress.log(f"{app.name} is already installed, skipping")
                return {'ok': True, 'appId': app.id, 'skipped': True,
                        'message': f"{app.name} is already installed"}
            raise ConflictError(f"{app.name} is already installed")

        settings = self.settings.get_raw()
        progress.step(12, "Checking installation environment")
        self.ensure_network(task_id)

        progress.step(24, "Pulling image")
        progress.log(f"Pulling image {app.image}")
        self.pull_image(app.image, on_event=self._pull_logger(task_id))

        progress.step(50, "Creating container")
        create_options = build_create_options(app, settings, self.config)
        with runtime_call(f"creating container {app.container_name}"):
            container = self.client.containers.create(**create_options)
        progress.log(f"Container created {short_id(container.id)}")

        progress.step(70, "Starting container")
        with runtime_call(f"starting container {app.container_name}"):
            container.start()
        progress.log(f"{app.name} started")

        progress.step(84, "Validating installation")
        self.prober.validate(app, task_id, settings)
        progress.log(f"{app.name} passed validation")

        updates = self.integration_backfill(app, settings)
        if updates:
            progress.step(92, "Syncing integration settings")
            self.settings.save(updates)
            progress.log(f"Integration settings updated: {', '.join(sorted(updates))}")

        return {'ok': True, 'appId': app.id, 'skipped': False, 'containerId': container.id,
                'message': f"{app.name} installed and started"}

    def start(self, app_id: str, task_id: int, progress: ProgressReporter) -> Dict[str, Any]:
        app, container = self._require_installed(app_id)
        progress.log(f"{app.name}: start")
        progress.step(45, "Starting container")
        with runtime_call(f"starting container {app.container_name}"):
            container.start()
        progress.step(78, "Validating after start")
        self.prober.validate(app, task_id, self.settings.get_raw())
        progress.log(f"{app.name} start finished")
        return {'ok': True, 'appId': app.id, 'action': 'start', 'message': f"{app.name} started"}

    def restart(self, app_id: str, task_id: int, progress: ProgressReporter) -> Dict[str, Any]:
        app, container = self._require_installed(app_id)
        progress.log(f"{app.name}: restart")
        progress.step(45, "Restarting container")
        with runtime_call(f"restarting container {app.container_name}"):
            container.restart()
        progress.step(78, "Validating after restart")
        self.prober.validate(app, task_id, self.settings.get_raw())
        progress.log(f"{app.name} restart finished")
        return {'ok': True, 'appId': app.id, 'action': 'restart', 'message': f"{app.name} restarted"}

    def stop(self, app_id: str, task_id: int, progress: ProgressReporter) -> Dict[str, Any]:
        app, container = self._require_installed(app_id)
        progress.log(f"{app.name}: stop")
        progress.step(45, "Stopping container")
        with runtime_call(f"stopping container {app.container_name}"):
            container.stop()
        progress.log(f"{app.name} stop finished")
        return {'ok': True, 'appId': app.id, 'action': 'stop', 'message': f"{app.name} stopped"}

    def uninstall(self, app_id: str, task_id: int, progress: ProgressReporter,
                  options: UninstallOptions = None) -> Dict[str, Any]:
        """
        Stop (with a grace period) and remove an application's container.

        With ``remove_data`` the application's host data directory is deleted
        too; a directory that is already gone is not an error.
        """
        options = options or UninstallOptions()
        app, container = self._require_installed(app_id)

        with runtime_call(f"inspecting container {app.container_name}"):
            running = container_state(container).get('Running')
        if running:
            progress.log("Stopping container")
            with runtime_call(f"stopping container {app.container_name}"):
                container.stop(timeout=STOP_GRACE_SECONDS)

        progress.log("Removing container")
        with runtime_call(f"removing container {app.container_name}"):
            container.remove(force=True)

        if options.remove_data:
            data_dir = app_data_dir(app, self.settings.get_raw())
            if data_dir:
                progress.log(f"Removing data directory {data_dir}")
                try:
                    shutil.rmtree(data_dir)
                except FileNotFoundError:
                    progress.log(f"Data directory {data_dir} was already absent")

        return {'ok': True, 'appId': app.id, 'removedData': options.remove_data,
                'message': f"{app.name} uninstalled"}

    def app_status(self, app: ApplicationDefinition, settings: Dict[str, Any]) -> Dict[str, Any]:
        """Installation and health summary of one catalog application."""
        open_url = ""
        if app.open_port_key:
            open_url = f"http://{self.config.public_host}:{settings.get(app.open_port_key)}{app.open_path}"

        status = {
            'id': app.id,
            'name': app.name,
            'category': app.category,
            'description': app.description,
            'image': app.image,
            'containerName': app.container_name,
            'openUrl': open_url,
            'installed': False,
            'running': False,
            'status': 'not_installed',
            'health': 'not_installed',
        }

        container = self.find_container(app)
        if container is None:
            return status

        with runtime_call(f"inspecting container {app.container_name}"):
            state = container_state(container)
        running = bool(state.get('Running'))
        health = (state.get('Health') or {}).get('Status') or ('running' if running else 'stopped')
        status.update({
            'installed': True,
            'running': running,
            'status': 'running' if running else 'stopped',
            'containerId': container.id,
            'health': health,
            'healthState': state.get('Status') or 'unknown',
            'healthError': state.get('Error') or '',
            'startedAt': state.get('StartedAt') or '',
        })
        return status
