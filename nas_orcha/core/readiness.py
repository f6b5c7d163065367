"""
Readiness probes for managed applications.

After a container starts, the prober waits until the runtime reports it as
running and then, depending on the application, until its HTTP listener
answers or its auxiliary dependency responds.
"""

import time
import logging
from typing import Any, Callable, Dict, Sequence

import requests
from docker.errors import NotFound

from nas_orcha.config import OrchestratorConfig
from nas_orcha.core.catalog import ApplicationDefinition
from nas_orcha.core.task_store import TaskStore
from nas_orcha.errors import UpstreamError
from nas_orcha.utils.docker_utils import container_state, find_container, runtime_call


logger = logging.getLogger('nas_orchestrator.readiness')

HTTP_TIMEOUT = 3
DEFAULT_HTTP_READY_TIMEOUT = 90.0
CONTAINER_POLL_INTERVAL = 0.9
LOG_EVERY_ATTEMPTS = 5


def is_ready_status(status_code: int) -> bool:
    """Any answer below 500 proves the HTTP listener is up, even 401 or 404."""
    return 200 <= status_code < 500


def describe_request_error(error: requests.RequestException) -> str:
    if isinstance(error, requests.Timeout):
        return "timeout"
    if isinstance(error, requests.ConnectionError):
        return f"connection error: {error}"
    return str(error) or error.__class__.__name__


class ReadinessProber:
    """
    Polls an application's container state and HTTP surface until healthy.
    """
    def __init__(self, client_provider: Callable[[], Any], store: TaskStore,
                 config: OrchestratorConfig,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Args:
            client_provider: Returns the Docker client
            store: Task store receiving probe log lines
            config: Orchestrator configuration
            clock: Monotonic clock, replaceable in tests
            sleep: Sleep function, replaceable in tests
        """
        self.client_provider = client_provider
        self.store = store
        self.config = config
        self.clock = clock
        self.sleep = sleep

    def wait_for_container(self, app: ApplicationDefinition, task_id: int,
                           timeout: float = None) -> bool:
        """Wait until the application's container reports ``Running``."""
        timeout = self.config.container_ready_timeout if timeout is None else timeout
        deadline = self.clock() + timeout
        last_state = "unknown"

        while self.clock() < deadline:
            with runtime_call(f"inspecting container {app.container_name}"):
                try:
                    container = find_container(self.client_provider(), app.container_name)
                    state = container_state(container) if container is not None else None
                except NotFound:
                    logger.debug(f"Container {app.container_name} vanished while inspecting it")
                    state = None

            if state is None:
                last_state = "missing"
            else:
                last_state = state.get('Status') or "unknown"
                if state.get('Running'):
                    self.store.append_log(task_id, f"{app.name} container is running")
                    return True
            self.sleep(CONTAINER_POLL_INTERVAL)

        raise UpstreamError(f"{app.name} did not start in time, container state: {last_state}")

    def wait_for_http(self, app_name: str, task_id: int, host: str, port: int,
                      paths: Sequence[str] = ("/",), timeout: float = DEFAULT_HTTP_READY_TIMEOUT,
                      interval: float = None) -> bool:
        """
        Poll candidate paths until one answers with a status in [200, 500).

        Raises:
            UpstreamError: The deadline expired; the message carries the last error
        """
        interval = self.config.http_ready_interval if interval is None else interval
        deadline = self.clock() + timeout
        attempt = 0
        last_error = "unknown"

        while self.clock() < deadline:
            attempt += 1
            for path in paths:
                url = f"http://{host}:{port}{path}"
                try:
                    response = requests.get(url, timeout=HTTP_TIMEOUT, allow_redirects=False)
                except requests.RequestException as e:
                    last_error = describe_request_error(e)
                    continue

                if is_ready_status(response.status_code):
                    self.store.append_log(
                        task_id,
                        f"{app_name} readiness check passed: {path} -> HTTP {response.status_code} "
                        f"(attempt {attempt})",
                    )
                    return True
                last_error = f"HTTP {response.status_code}"

            if attempt == 1 or attempt % LOG_EVERY_ATTEMPTS == 0:
                self.store.append_log(
                    task_id,
                    f"{app_name} readiness check in progress (attempt {attempt}), last error: {last_error}",
                )
            self.sleep(interval)

        logger.warning(f"{app_name} readiness check failed after {attempt} attempts: {last_error}")
        raise UpstreamError(f"{app_name} readiness check failed: {last_error}")

    def ping_runtime_proxy(self, task_id: int) -> bool:
        """Check that the Docker API proxy used by runtime-only apps answers ``OK``."""
        url = f"{self.config.docker_proxy_url.rstrip('/')}/_ping"
        try:
            response = requests.get(url, timeout=HTTP_TIMEOUT, allow_redirects=False)
        except requests.RequestException as e:
            raise UpstreamError(f"docker proxy unavailable: {describe_request_error(e)}")

        body = response.text.strip()
        if not response.ok or body != "OK":
            raise UpstreamError(
                f"docker proxy unavailable: status={response.status_code}, body={body[:50]}"
            )

        self.store.append_log(task_id, "docker proxy connectivity check passed")
        return True

    def validate(self, app: ApplicationDefinition, task_id: int,
                 settings: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the readiness checks of ``app``: container state first, then the
        HTTP probe or the auxiliary dependency ping.
        """
        self.store.append_log(task_id, f"Validating {app.name} after start")
        self.wait_for_container(app, task_id)

        check = app.readiness
        if check.kind == "http":
            port = int(settings[check.port_key]) if check.port_key else check.port
            self.wait_for_http(
                app_name=app.name,
                task_id=task_id,
                host=app.container_name,
                port=port,
                paths=check.paths,
                timeout=check.timeout,
            )
            return {'ok': True, 'type': 'http'}

        self.ping_runtime_proxy(task_id)
        return {'ok': True, 'type': 'runtime'}
