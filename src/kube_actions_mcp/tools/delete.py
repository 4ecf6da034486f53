"""kube_delete: delete a single resource by apiVersion, kind, name, and namespace."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from kube_actions_mcp.clients import ResourceClient
from kube_actions_mcp.models import DeleteOutput
from kube_actions_mcp.resolver import ClientResolver
from kube_actions_mcp.validation import validate_api_version, validate_namespace, validate_resource_name

log = structlog.get_logger()


async def delete_resource(
    api_version: str,
    kind: str,
    name: str,
    namespace: str | None,
    client: ResourceClient,
) -> dict[str, Any]:
    """Delete one resource. Errors are logged and re-raised, never swallowed."""
    log.info("deleting_resource", api_version=api_version, kind=kind, name=name, namespace=namespace)
    try:
        return await client.delete(api_version, kind, name, namespace)
    except Exception as e:
        log.error("delete_failed", api_version=api_version, kind=kind, name=name, namespace=namespace, error=str(e))
        raise


async def kube_delete_handler(
    resolver: ClientResolver,
    api_version: str,
    kind: str,
    name: str,
    namespace: str = "default",
    cluster_name: str | None = None,
    token: str | None = None,
) -> DeleteOutput:
    """Resolve a client for the cluster and delete the resource."""
    validate_api_version(api_version)
    validate_resource_name(kind, name)
    validate_namespace(namespace)

    client = await asyncio.to_thread(resolver.get_resource_client, cluster_name, token)
    try:
        result = await delete_resource(api_version, kind, name, namespace, client)
    finally:
        client.close()

    return DeleteOutput(
        cluster=client.cluster or "default",
        api_version=api_version,
        kind=kind,
        name=name,
        namespace=namespace,
        status=result.get("status") if isinstance(result.get("status"), str) else None,
        timestamp=datetime.now(tz=UTC).isoformat(),
    )
