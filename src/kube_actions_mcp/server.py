"""MCP server entry point and tool registration."""

from __future__ import annotations

import sys
import time

import structlog
from mcp.server.fastmcp import FastMCP

from kube_actions_mcp.config import ApplySettings, WaitSettings, load_cluster_registry
from kube_actions_mcp.models import scrub_sensitive_values
from kube_actions_mcp.resolver import ClientResolver
from kube_actions_mcp.tools.apply import kube_apply_handler
from kube_actions_mcp.tools.delete import kube_delete_handler
from kube_actions_mcp.tools.job_wait import kube_job_wait_handler

SERVER_NAME = "Kube Actions MCP Server"

log = structlog.get_logger()


def configure_logging() -> None:
    """Configure structlog for JSON output to stderr; stdout carries the MCP stdio stream."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if sys.stderr.isatty() else structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_server(
    resolver: ClientResolver,
    wait_settings: WaitSettings | None = None,
    apply_settings: ApplySettings | None = None,
) -> FastMCP:
    """Create the FastMCP server with the apply, delete, and job wait tools bound to ``resolver``."""
    mcp = FastMCP(SERVER_NAME)
    wait_settings = wait_settings or WaitSettings()
    apply_settings = apply_settings or ApplySettings()

    @mcp.tool()
    async def kube_apply(
        manifest: str,
        namespaced: bool = False,
        cluster_name: str | None = None,
        token: str | None = None,
    ) -> str:
        """Apply Kubernetes resources from YAML or JSON manifest text.

        Each document is created when absent or merge-patched when it already
        exists, and is stamped with the kubectl last-applied-configuration
        annotation. Documents without kind or metadata are skipped.

        Args:
            manifest: One or more YAML documents (or JSON) describing the resources.
            namespaced: Whether the resources are namespaced. Informational only.
            cluster_name: Cluster name from app-config. Omit for the first configured cluster.
            token: Bearer token for clusters using the oidc auth provider.
        """
        start = time.monotonic()
        try:
            result = await kube_apply_handler(resolver, manifest, namespaced, cluster_name, token, apply_settings)
            log.info("tool_completed", tool="kube_apply", cluster=result.cluster, latency_ms=_elapsed_ms(start))
            return result.model_dump_json(indent=2)
        except Exception as e:
            sanitised = scrub_sensitive_values(str(e))
            log.error("tool_failed", tool="kube_apply", cluster=cluster_name, error=sanitised)
            raise RuntimeError(sanitised) from None

    @mcp.tool()
    async def kube_delete(
        api_version: str,
        kind: str,
        name: str,
        namespace: str = "default",
        cluster_name: str | None = None,
        token: str | None = None,
    ) -> str:
        """Delete a Kubernetes resource.

        Args:
            api_version: The apiVersion of the resource, e.g. 'v1' or 'batch/v1'.
            kind: The kind of the resource, e.g. 'ConfigMap'.
            name: The name of the resource.
            namespace: The namespace of the resource. Default 'default'.
            cluster_name: Cluster name from app-config. Omit for the first configured cluster.
            token: Bearer token for clusters using the oidc auth provider.
        """
        start = time.monotonic()
        try:
            result = await kube_delete_handler(resolver, api_version, kind, name, namespace, cluster_name, token)
            log.info("tool_completed", tool="kube_delete", cluster=result.cluster, latency_ms=_elapsed_ms(start))
            return result.model_dump_json(indent=2)
        except Exception as e:
            sanitised = scrub_sensitive_values(str(e))
            log.error("tool_failed", tool="kube_delete", cluster=cluster_name, error=sanitised)
            raise RuntimeError(sanitised) from None

    @mcp.tool()
    async def kube_job_wait(
        labels: dict[str, str],
        namespace: str = "default",
        cluster_name: str | None = None,
        timeout: int | None = None,
        token: str | None = None,
    ) -> str:
        """Wait for a Kubernetes Job selected by labels to complete.

        Polls every few seconds until exactly one matching Job reports a
        completion time, then returns its conditions. Fails once the timeout
        elapses.

        Args:
            labels: Labels of the Job to wait on; all must match.
            namespace: The namespace of the Job. Default 'default'.
            cluster_name: Cluster name from app-config. Omit for the first configured cluster.
            timeout: Seconds to wait before failing. Default 60.
            token: Bearer token for clusters using the oidc auth provider.
        """
        start = time.monotonic()
        try:
            result = await kube_job_wait_handler(
                resolver, labels, namespace, cluster_name, timeout, token, wait_settings
            )
            log.info("tool_completed", tool="kube_job_wait", cluster=result.cluster, latency_ms=_elapsed_ms(start))
            return result.model_dump_json(indent=2)
        except Exception as e:
            sanitised = scrub_sensitive_values(str(e))
            log.error("tool_failed", tool="kube_job_wait", cluster=cluster_name, error=sanitised)
            raise RuntimeError(sanitised) from None

    return mcp


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def main() -> None:
    configure_logging()
    registry = load_cluster_registry()
    server = build_server(ClientResolver(registry))
    server.run(transport="stdio")


# MCP client configuration example:
#
# {
#   "mcpServers": {
#     "kube-actions": {
#       "command": "uv",
#       "args": ["run", "--directory", "/path/to/kube-actions-mcp", "kube-actions-mcp"],
#       "env": {"KUBE_ACTIONS_CONFIG": "/path/to/app-config.yaml"}
#     }
#   }
# }
if __name__ == "__main__":
    main()
