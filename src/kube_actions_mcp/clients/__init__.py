"""Client wrappers for the Kubernetes API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.config import new_client_from_config, new_client_from_config_dict

if TYPE_CHECKING:
    from kube_actions_mcp.resolver import ResolvedClientConfig


class ResourceClient(Protocol):
    """The capabilities apply, delete, and job wait need from a cluster."""

    # Registered cluster name, or None when running on ambient credentials
    cluster: str | None

    async def read(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]: ...

    async def delete(self, api_version: str, kind: str, name: str, namespace: str | None) -> dict[str, Any]: ...

    async def list_jobs(self, namespace: str, label_selector: str) -> list[dict[str, Any]]: ...

    def close(self) -> None: ...


def load_ambient_api_client() -> k8s_client.ApiClient:
    """Create an API client from the environment's own credentials.

    Tries the default kubeconfig (``KUBECONFIG`` or ``~/.kube/config``) first and
    falls back to the in-cluster service account.
    """
    try:
        return new_client_from_config()
    except k8s_config.ConfigException:
        configuration = k8s_client.Configuration()
        k8s_config.load_incluster_config(client_configuration=configuration)
        return k8s_client.ApiClient(configuration=configuration)


def load_k8s_api_client(resolved: ResolvedClientConfig) -> k8s_client.ApiClient:
    """Create an isolated Kubernetes API client for a resolved configuration.

    Uses new_client_from_config_dict so the SDK's global default configuration
    is never mutated and clients for different clusters can coexist.
    """
    if resolved.is_ambient:
        return load_ambient_api_client()
    return new_client_from_config_dict(config_dict=resolved.to_kubeconfig(), context=resolved.context_name)
