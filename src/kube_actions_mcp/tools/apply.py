"""kube_apply: create or merge-patch every resource in a multi-document manifest."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, date, datetime
from typing import Any

import structlog
import yaml

from kube_actions_mcp.clients import ResourceClient
from kube_actions_mcp.config import ApplySettings, get_apply_settings
from kube_actions_mcp.exceptions import ResourceNotFoundError
from kube_actions_mcp.models import AppliedResource, ApplyOutput
from kube_actions_mcp.resolver import ClientResolver

log = structlog.get_logger()

LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"


def parse_manifests(manifest_source: str) -> list[dict[str, Any]]:
    """Parse multi-document YAML (or JSON) text into reconcilable records.

    Documents without a kind or without metadata are dropped.

    Raises:
        ValueError: If the text is not valid YAML.
    """
    try:
        documents = list(yaml.safe_load_all(manifest_source))
    except yaml.YAMLError as e:
        msg = f"Manifest is not valid YAML: {e}"
        raise ValueError(msg) from e

    return [
        doc
        for doc in documents
        if isinstance(doc, dict) and doc.get("kind") and isinstance(doc.get("metadata"), dict) and doc["metadata"]
    ]


def _json_default(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def stamp_last_applied(manifest: dict[str, Any]) -> None:
    """Overwrite the last-applied annotation with a JSON snapshot of the manifest."""
    metadata = manifest["metadata"]
    annotations = metadata.get("annotations")
    if not isinstance(annotations, dict):
        annotations = {}
        metadata["annotations"] = annotations
    annotations.pop(LAST_APPLIED_ANNOTATION, None)
    annotations[LAST_APPLIED_ANNOTATION] = json.dumps(manifest, separators=(",", ":"), default=_json_default)


async def _exists(manifest: dict[str, Any], client: ResourceClient, strict_not_found: bool) -> bool:
    metadata = manifest["metadata"]
    try:
        await client.read(manifest)
    except ResourceNotFoundError:
        return False
    except Exception as e:
        if strict_not_found:
            log.error("read_failed", kind=manifest["kind"], name=metadata.get("name"), error=str(e))
            raise
        # Any read failure counts as absence unless strict_not_found is set
        log.info("read_failed_assuming_absent", kind=manifest["kind"], name=metadata.get("name"), error=str(e))
        return False
    return True


async def apply_manifests(
    manifest_source: str,
    client: ResourceClient,
    *,
    strict_not_found: bool = False,
) -> list[dict[str, Any]]:
    """Create or merge-patch each record of a manifest, in document order.

    A record whose live object can be read is merge-patched, otherwise it is
    created. A failed create or patch aborts the remaining records.

    Returns the API server's representation of every created or patched resource.
    """
    applied: list[dict[str, Any]] = []
    for manifest in parse_manifests(manifest_source):
        metadata = manifest["metadata"]
        stamp_last_applied(manifest)
        context = {
            "kind": manifest["kind"],
            "name": metadata.get("name"),
            "namespace": metadata.get("namespace"),
        }

        if await _exists(manifest, client, strict_not_found):
            log.info("resource_exists_patching", **context)
            response = await client.patch(manifest)
            log.info("resource_patched", **context)
        else:
            log.info("resource_absent_creating", **context)
            response = await client.create(manifest)
            log.info("resource_created", **context)
        applied.append(response)
    return applied


async def kube_apply_handler(
    resolver: ClientResolver,
    manifest: str,
    namespaced: bool = False,
    cluster_name: str | None = None,
    token: str | None = None,
    settings: ApplySettings | None = None,
) -> ApplyOutput:
    """Resolve a client for the cluster and apply the manifest against it."""
    settings = settings or get_apply_settings()
    log.info("apply_requested", cluster=cluster_name, namespaced=namespaced)

    client = await asyncio.to_thread(resolver.get_resource_client, cluster_name, token)
    try:
        applied = await apply_manifests(manifest, client, strict_not_found=settings.strict_not_found)
    finally:
        client.close()

    resources = [AppliedResource.from_resource(r) for r in applied]
    for resource in resources:
        log.info("applied_resource", kind=resource.kind, namespace=resource.namespace, name=resource.name)

    return ApplyOutput(
        cluster=client.cluster or "default",
        resources=resources,
        summary=f"Applied {len(resources)} resource(s)",
        timestamp=datetime.now(tz=UTC).isoformat(),
    )
