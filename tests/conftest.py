"""Shared test fixtures for all test modules."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from kube_actions_mcp.config import ClusterRegistry, build_cluster_registry
from kube_actions_mcp.exceptions import ResourceNotFoundError


def make_config_tree(*clusters: dict[str, Any], locator_type: str = "config") -> dict[str, Any]:
    """Build an app-config tree with one locator holding the given cluster entries."""
    return {
        "kubernetes": {
            "clusterLocatorMethods": [
                {"type": locator_type, "clusters": list(clusters)},
            ]
        }
    }


@pytest.fixture
def app_config() -> dict[str, Any]:
    return make_config_tree(
        {
            "name": "prod",
            "url": "https://prod.example.com",
            "authProvider": "serviceAccount",
            "serviceAccountToken": "tok-A",
            "caData": "Y2EtZGF0YQ==",
        },
        {
            "name": "dev",
            "url": "https://dev.example.com",
            "authProvider": "oidc",
            "skipTLSVerify": True,
        },
        {
            "name": "legacy",
            "url": "https://legacy.example.com",
            "authProvider": "aws",
        },
    )


@pytest.fixture
def registry(app_config: dict[str, Any]) -> ClusterRegistry:
    return build_cluster_registry(app_config)


def _key(api_version: str, kind: str, name: str, namespace: str | None) -> tuple[str, str, str, str]:
    return (api_version, kind, namespace or "default", name)


def _merge(target: dict[str, Any], patch: dict[str, Any]) -> None:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        elif value is None:
            target.pop(key, None)
        else:
            target[key] = copy.deepcopy(value)


class FakeResourceClient:
    """In-memory ResourceClient that records every call."""

    def __init__(self, cluster: str | None = "prod") -> None:
        self.cluster = cluster
        self.objects: dict[tuple[str, str, str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.read_error: Exception | None = None
        self.create_error: Exception | None = None
        self.patch_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.job_responses: list[list[dict[str, Any]] | Exception] = []
        self.list_calls: list[tuple[str, str]] = []
        self.closed = False

    @staticmethod
    def _manifest_key(manifest: dict[str, Any]) -> tuple[str, str, str, str]:
        metadata = manifest["metadata"]
        return _key(manifest["apiVersion"], manifest["kind"], metadata["name"], metadata.get("namespace"))

    def count(self, verb: str) -> int:
        return sum(1 for call_verb, _ in self.calls if call_verb == verb)

    async def read(self, manifest: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("read", manifest["metadata"]["name"]))
        if self.read_error is not None:
            raise self.read_error
        key = self._manifest_key(manifest)
        if key not in self.objects:
            raise ResourceNotFoundError(manifest["kind"], manifest["metadata"]["name"], key[2])
        return copy.deepcopy(self.objects[key])

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", manifest["metadata"]["name"]))
        if self.create_error is not None:
            raise self.create_error
        stored = copy.deepcopy(manifest)
        stored["metadata"].setdefault("namespace", "default")
        stored["metadata"]["uid"] = f"uid-{manifest['metadata']['name']}"
        stored["metadata"]["resourceVersion"] = "1"
        self.objects[self._manifest_key(manifest)] = stored
        return copy.deepcopy(stored)

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("patch", manifest["metadata"]["name"]))
        if self.patch_error is not None:
            raise self.patch_error
        stored = self.objects[self._manifest_key(manifest)]
        _merge(stored, manifest)
        stored["metadata"]["resourceVersion"] = str(int(stored["metadata"]["resourceVersion"]) + 1)
        return copy.deepcopy(stored)

    async def delete(self, api_version: str, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        self.calls.append(("delete", name))
        if self.delete_error is not None:
            raise self.delete_error
        key = _key(api_version, kind, name, namespace)
        if key not in self.objects:
            raise ResourceNotFoundError(kind, name, namespace)
        del self.objects[key]
        return {"kind": "Status", "apiVersion": "v1", "status": "Success", "details": {"name": name, "kind": kind}}

    async def list_jobs(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        self.list_calls.append((namespace, label_selector))
        if not self.job_responses:
            return []
        response = self.job_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client() -> FakeResourceClient:
    return FakeResourceClient()


def make_job(
    name: str = "migrate-db-abc12",
    completed: bool = False,
    conditions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Create a job dict shaped like K8sResourceClient.list_jobs output."""
    if conditions is None and completed:
        conditions = [
            {
                "type": "Complete",
                "status": "True",
                "reason": None,
                "message": None,
                "last_transition_time": "2026-01-01T00:00:10+00:00",
            }
        ]
    return {
        "name": name,
        "namespace": "default",
        "labels": {"app": "migrate"},
        "completion_time": "2026-01-01T00:00:10+00:00" if completed else None,
        "active": 0 if completed else 1,
        "succeeded": 1 if completed else 0,
        "failed": 0,
        "conditions": conditions or [],
    }
