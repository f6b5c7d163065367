"""
Docker utility functions for the NAS App Orchestrator.
"""

from contextlib import contextmanager
from typing import Any, Dict, Optional

import docker
import requests
from docker.errors import APIError, DockerException

from nas_orcha.errors import UpstreamError


def get_client(docker_host: Optional[str] = None, timeout: int = 120) -> docker.DockerClient:
    """
    Create a Docker client.

    Args:
        docker_host: ``unix://`` or ``tcp://`` URL. Uses the environment when empty.
        timeout: API call timeout in seconds

    Returns:
        docker.DockerClient: A connected client
    """
    try:
        if docker_host:
            client = docker.DockerClient(base_url=docker_host, timeout=timeout)
        else:
            client = docker.from_env(timeout=timeout)
        client.ping()
        return client
    except (DockerException, requests.RequestException) as e:
        raise UpstreamError(f"Docker runtime unavailable: {str(e)}")


def find_container(client: docker.DockerClient, name: str):
    """
    Find a container (running or not) by its exact name.

    Returns:
        The container, or None if no container has that name
    """
    for container in client.containers.list(all=True, filters={'name': name}):
        if container.name == name:
            return container
    return None


def container_state(container) -> Dict[str, Any]:
    """Refresh and return the ``State`` block of a container's inspect data."""
    container.reload()
    return container.attrs.get('State') or {}


@contextmanager
def runtime_call(operation: str):
    """
    Re-raise Docker SDK failures as UpstreamError naming the operation.

    The SDK lets transport errors from ``requests`` (daemon gone, read
    timeout) through unwrapped; they are converted as well.
    """
    try:
        yield
    except (DockerException, requests.RequestException) as e:
        raise UpstreamError(f"{operation} failed: {str(e)}") from e


def short_id(container_id: Optional[str]) -> str:
    return (container_id or "").replace("sha256:", "")[:12]


def is_already_exists(error: Exception) -> bool:
    """Whether a Docker API error means the object is already there."""
    if isinstance(error, APIError) and error.status_code == 409:
        return True
    return "already exists" in str(error)
