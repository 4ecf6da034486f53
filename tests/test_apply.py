"""Tests for tools/apply.py: manifest parsing, create-or-patch, last-applied annotation."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from conftest import FakeResourceClient

from kube_actions_mcp.config import ApplySettings
from kube_actions_mcp.tools.apply import (
    LAST_APPLIED_ANNOTATION,
    apply_manifests,
    kube_apply_handler,
    parse_manifests,
    stamp_last_applied,
)

CONFIGMAP = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: app-settings
  namespace: default
data:
  mode: fast
"""

CUSTOM_RESOURCE_JSON = """{
    "apiVersion": "test.crd/v1alpha1",
    "kind": "mycr",
    "metadata": {"name": "test-mycr", "namespace": "default"},
    "spec": {"config": "important"}
}"""


class TestParseManifests:
    def test_single_document(self) -> None:
        records = parse_manifests(CONFIGMAP)
        assert len(records) == 1
        assert records[0]["metadata"]["name"] == "app-settings"

    def test_json_input(self) -> None:
        records = parse_manifests(CUSTOM_RESOURCE_JSON)
        assert records[0]["spec"] == {"config": "important"}

    def test_drops_empty_and_malformed_documents(self) -> None:
        source = "---\n" + CONFIGMAP + "---\n---\njust a string\n---\nkind: Secret\n---\nmetadata: {name: x}\n"
        records = parse_manifests(source)
        assert [r["kind"] for r in records] == ["ConfigMap"]

    def test_drops_documents_with_empty_metadata(self) -> None:
        assert parse_manifests("kind: ConfigMap\nmetadata: {}\n") == []

    def test_empty_input(self) -> None:
        assert parse_manifests("") == []

    def test_invalid_yaml_raises(self) -> None:
        with pytest.raises(ValueError, match="not valid YAML"):
            parse_manifests("kind: [unclosed\n")


class TestStampLastApplied:
    def test_snapshot_excludes_previous_annotation(self) -> None:
        manifest = {
            "kind": "ConfigMap",
            "metadata": {"name": "x", "annotations": {LAST_APPLIED_ANNOTATION: "stale", "team": "core"}},
        }
        stamp_last_applied(manifest)
        snapshot = json.loads(manifest["metadata"]["annotations"][LAST_APPLIED_ANNOTATION])
        assert snapshot["metadata"]["annotations"] == {"team": "core"}
        assert manifest["metadata"]["annotations"]["team"] == "core"

    def test_creates_annotations_mapping(self) -> None:
        manifest = {"kind": "ConfigMap", "metadata": {"name": "x", "annotations": None}}
        stamp_last_applied(manifest)
        assert LAST_APPLIED_ANNOTATION in manifest["metadata"]["annotations"]

    def test_snapshot_is_compact_json(self) -> None:
        manifest = {"kind": "ConfigMap", "metadata": {"name": "x"}}
        stamp_last_applied(manifest)
        assert manifest["metadata"]["annotations"][LAST_APPLIED_ANNOTATION] == (
            '{"kind":"ConfigMap","metadata":{"name":"x","annotations":{}}}'
        )

    def test_yaml_timestamps_are_written_as_iso_8601(self) -> None:
        manifest = parse_manifests(
            "kind: ConfigMap\nmetadata:\n  name: x\ndata:\n  at: 2026-01-02T03:04:05Z\n  day: 2026-01-02\n"
        )[0]
        stamp_last_applied(manifest)
        snapshot = json.loads(manifest["metadata"]["annotations"][LAST_APPLIED_ANNOTATION])
        assert snapshot["data"]["at"] == "2026-01-02T03:04:05+00:00"
        assert snapshot["data"]["day"] == "2026-01-02"


class TestApplyManifests:
    async def test_absent_resource_is_created(self, fake_client: FakeResourceClient) -> None:
        result = await apply_manifests(CONFIGMAP, fake_client)
        assert fake_client.count("create") == 1
        assert fake_client.count("patch") == 0
        assert result[0]["metadata"]["name"] == "app-settings"

    async def test_reapplying_unchanged_manifest_patches(self, fake_client: FakeResourceClient) -> None:
        await apply_manifests(CONFIGMAP, fake_client)
        fake_client.calls.clear()

        result = await apply_manifests(CONFIGMAP, fake_client)

        assert fake_client.count("create") == 0
        assert fake_client.count("patch") == 1
        assert result[0]["metadata"]["resourceVersion"] == "2"

    async def test_merge_patch_keeps_existing_fields(self, fake_client: FakeResourceClient) -> None:
        await apply_manifests(CUSTOM_RESOURCE_JSON, fake_client)
        updated = """{
            "apiVersion": "test.crd/v1alpha1",
            "kind": "mycr",
            "metadata": {"name": "test-mycr", "namespace": "default", "labels": {"new-label": "new-value"}},
            "spec": {"anotherConfig": "also-important"}
        }"""
        result = await apply_manifests(updated, fake_client)
        assert result[0]["metadata"]["labels"] == {"new-label": "new-value"}
        assert result[0]["spec"] == {"config": "important", "anotherConfig": "also-important"}

    async def test_result_carries_decodable_last_applied_annotation(self, fake_client: FakeResourceClient) -> None:
        result = await apply_manifests(CONFIGMAP, fake_client)
        annotation = result[0]["metadata"]["annotations"][LAST_APPLIED_ANNOTATION]
        snapshot = json.loads(annotation)
        assert snapshot["kind"] == "ConfigMap"
        assert snapshot["metadata"]["name"] == "app-settings"
        assert LAST_APPLIED_ANNOTATION not in snapshot["metadata"]["annotations"]

    async def test_malformed_document_is_skipped_and_order_kept(self, fake_client: FakeResourceClient) -> None:
        second = CONFIGMAP.replace("app-settings", "second")
        source = CONFIGMAP + "---\nnot: a resource\n---\n" + second
        result = await apply_manifests(source, fake_client)
        assert [r["metadata"]["name"] for r in result] == ["app-settings", "second"]

    async def test_one_valid_one_empty_document(self, fake_client: FakeResourceClient) -> None:
        result = await apply_manifests(CONFIGMAP + "---\n", fake_client)
        assert len(result) == 1

    async def test_any_read_error_is_treated_as_absent(self, fake_client: FakeResourceClient) -> None:
        fake_client.read_error = PermissionError("forbidden")
        await apply_manifests(CONFIGMAP, fake_client)
        assert fake_client.count("create") == 1

    async def test_strict_not_found_reraises_other_read_errors(self, fake_client: FakeResourceClient) -> None:
        fake_client.read_error = PermissionError("forbidden")
        with pytest.raises(PermissionError):
            await apply_manifests(CONFIGMAP, fake_client, strict_not_found=True)
        assert fake_client.count("create") == 0

    async def test_strict_not_found_still_creates_on_404(self, fake_client: FakeResourceClient) -> None:
        await apply_manifests(CONFIGMAP, fake_client, strict_not_found=True)
        assert fake_client.count("create") == 1

    async def test_create_failure_aborts_remaining_records(self, fake_client: FakeResourceClient) -> None:
        fake_client.create_error = RuntimeError("admission webhook denied")
        source = CONFIGMAP + "---\n" + CONFIGMAP.replace("app-settings", "second")
        with pytest.raises(RuntimeError, match="admission webhook denied"):
            await apply_manifests(source, fake_client)
        assert [name for verb, name in fake_client.calls if verb == "create"] == ["app-settings"]
        assert ("read", "second") not in fake_client.calls

    async def test_patch_failure_propagates_without_create(self, fake_client: FakeResourceClient) -> None:
        await apply_manifests(CONFIGMAP, fake_client)
        fake_client.calls.clear()
        fake_client.patch_error = RuntimeError("conflict")
        with pytest.raises(RuntimeError, match="conflict"):
            await apply_manifests(CONFIGMAP, fake_client)
        assert fake_client.count("create") == 0


class TestKubeApplyHandler:
    async def test_returns_resource_summaries(self, fake_client: FakeResourceClient) -> None:
        resolver = MagicMock()
        resolver.get_resource_client.return_value = fake_client

        output = await kube_apply_handler(
            resolver, CONFIGMAP, namespaced=True, cluster_name="prod", settings=ApplySettings(strict_not_found=False)
        )

        resolver.get_resource_client.assert_called_once_with("prod", None)
        assert output.cluster == "prod"
        assert output.summary == "Applied 1 resource(s)"
        resource = output.resources[0]
        assert (resource.kind, resource.namespace, resource.name) == ("ConfigMap", "default", "app-settings")
        assert resource.uid == "uid-app-settings"

    async def test_ambient_client_reports_default_cluster(self) -> None:
        resolver = MagicMock()
        resolver.get_resource_client.return_value = FakeResourceClient(cluster=None)
        output = await kube_apply_handler(resolver, CONFIGMAP, settings=ApplySettings(strict_not_found=False))
        assert output.cluster == "default"

    async def test_client_is_closed_after_apply(self, fake_client: FakeResourceClient) -> None:
        resolver = MagicMock()
        resolver.get_resource_client.return_value = fake_client
        await kube_apply_handler(resolver, CONFIGMAP, settings=ApplySettings(strict_not_found=False))
        assert fake_client.closed

    async def test_client_is_closed_when_apply_fails(self, fake_client: FakeResourceClient) -> None:
        fake_client.create_error = RuntimeError("admission webhook denied")
        resolver = MagicMock()
        resolver.get_resource_client.return_value = fake_client
        with pytest.raises(RuntimeError):
            await kube_apply_handler(resolver, CONFIGMAP, settings=ApplySettings(strict_not_found=False))
        assert fake_client.closed
