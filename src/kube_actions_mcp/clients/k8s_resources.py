"""Generic resource client: read/create/merge-patch/delete by apiVersion and kind, job listing."""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime
from typing import Any

import structlog
from kubernetes import client as k8s_client
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic import exceptions as dynamic_exceptions

from kube_actions_mcp.exceptions import ResourceNotFoundError

log = structlog.get_logger()

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"
DEFAULT_NAMESPACE = "default"


class K8sResourceClient:
    """ResourceClient backed by the dynamic client and the Batch V1 API."""

    def __init__(self, api_client: k8s_client.ApiClient, cluster: str | None = None) -> None:
        self._api_client = api_client
        self.cluster = cluster
        # DynamicClient runs API discovery on construction, so it is built on first use
        self._dynamic: DynamicClient | None = None
        self._batch_api: k8s_client.BatchV1Api | None = None
        # Discovery can hold the dynamic lock for a network round trip
        self._dynamic_lock = threading.Lock()
        self._batch_lock = threading.Lock()

    def close(self) -> None:
        """Release the underlying API client's connection pool."""
        self._api_client.close()

    def _get_dynamic(self) -> DynamicClient:
        with self._dynamic_lock:
            if self._dynamic is None:
                self._dynamic = DynamicClient(self._api_client)
            return self._dynamic

    def _get_batch_api(self) -> k8s_client.BatchV1Api:
        with self._batch_lock:
            if self._batch_api is None:
                self._batch_api = k8s_client.BatchV1Api(self._api_client)
            return self._batch_api

    def _locate(self, api_version: str, kind: str, namespace: str | None) -> tuple[Any, str | None]:
        resource = self._get_dynamic().resources.get(api_version=api_version, kind=kind)
        if not resource.namespaced:
            return resource, None
        return resource, namespace or DEFAULT_NAMESPACE

    def _read(self, manifest: dict[str, Any]) -> dict[str, Any]:
        metadata = manifest["metadata"]
        resource, namespace = self._locate(manifest["apiVersion"], manifest["kind"], metadata.get("namespace"))
        try:
            obj = resource.get(name=metadata["name"], namespace=namespace)
        except dynamic_exceptions.NotFoundError as e:
            raise ResourceNotFoundError(manifest["kind"], metadata["name"], namespace) from e
        return obj.to_dict()

    def _create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        resource, namespace = self._locate(
            manifest["apiVersion"], manifest["kind"], manifest["metadata"].get("namespace")
        )
        return resource.create(body=manifest, namespace=namespace).to_dict()

    def _patch(self, manifest: dict[str, Any]) -> dict[str, Any]:
        metadata = manifest["metadata"]
        resource, namespace = self._locate(manifest["apiVersion"], manifest["kind"], metadata.get("namespace"))
        return resource.patch(
            body=manifest,
            name=metadata["name"],
            namespace=namespace,
            content_type=MERGE_PATCH_CONTENT_TYPE,
        ).to_dict()

    def _delete(self, api_version: str, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        resource, namespace = self._locate(api_version, kind, namespace)
        try:
            return resource.delete(name=name, namespace=namespace).to_dict()
        except dynamic_exceptions.NotFoundError as e:
            raise ResourceNotFoundError(kind, name, namespace) from e

    async def read(self, manifest: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._read, manifest)

    async def create(self, manifest: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._create, manifest)

    async def patch(self, manifest: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._patch, manifest)

    async def delete(self, api_version: str, kind: str, name: str, namespace: str | None) -> dict[str, Any]:
        return await asyncio.to_thread(self._delete, api_version, kind, name, namespace)

    async def list_jobs(self, namespace: str, label_selector: str) -> list[dict[str, Any]]:
        """List jobs in a namespace matching a label selector.

        Returns a list of dicts with keys: name, namespace, labels, completion_time,
        active, succeeded, failed, conditions.
        """
        api = self._get_batch_api()
        try:
            job_list = await asyncio.to_thread(
                api.list_namespaced_job,
                namespace,
                label_selector=label_selector,
            )
        except Exception:
            log.error("failed_to_list_jobs", cluster=self.cluster, namespace=namespace, selector=label_selector)
            raise

        results: list[dict[str, Any]] = []
        for job in job_list.items:
            status = job.status
            results.append(
                {
                    "name": job.metadata.name,
                    "namespace": job.metadata.namespace,
                    "labels": job.metadata.labels or {},
                    "completion_time": _isoformat(status.completion_time) if status else None,
                    "active": (status.active or 0) if status else 0,
                    "succeeded": (status.succeeded or 0) if status else 0,
                    "failed": (status.failed or 0) if status else 0,
                    "conditions": [
                        {
                            "type": c.type,
                            "status": c.status,
                            "reason": c.reason,
                            "message": c.message,
                            "last_transition_time": _isoformat(c.last_transition_time),
                        }
                        for c in ((status.conditions if status else None) or [])
                    ],
                }
            )
        return results


def _isoformat(value: datetime | str | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
