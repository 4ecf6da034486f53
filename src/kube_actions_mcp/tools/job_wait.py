"""kube_job_wait: poll for a single job matching a label selector until it completes."""

from __future__ import annotations

import asyncio
import math
from datetime import UTC, datetime
from typing import Any

import structlog

from kube_actions_mcp.clients import ResourceClient
from kube_actions_mcp.config import WaitSettings, get_wait_settings
from kube_actions_mcp.exceptions import JobWaitTimeoutError, MultipleJobsFoundError
from kube_actions_mcp.models import JobCondition, JobWaitOutput
from kube_actions_mcp.resolver import ClientResolver
from kube_actions_mcp.validation import validate_label_selector, validate_namespace, validate_timeout

log = structlog.get_logger()


def format_label_selector(labels: dict[str, str]) -> str:
    """Join a label mapping into an equality-based selector, e.g. ``app=web,tier=db``."""
    return ",".join(f"{key}={value}" for key, value in labels.items())


def max_attempts(timeout_seconds: float, poll_interval_seconds: float) -> int:
    return max(1, math.ceil(timeout_seconds / poll_interval_seconds))


async def wait_for_job(
    labels: dict[str, str],
    namespace: str,
    client: ResourceClient,
    timeout_seconds: float | None = None,
    settings: WaitSettings | None = None,
) -> list[dict[str, Any]]:
    """Poll until exactly one job matching ``labels`` has a completion time.

    The job list is fetched once per poll interval, up to
    ``ceil(timeout_seconds / poll_interval)`` times. Zero matches, an incomplete
    job, and list errors are logged and retried. More than one match is
    retried or fatal depending on ``settings.multiple_jobs_policy``.

    Returns the completed job's conditions.

    Raises:
        JobWaitTimeoutError: If no completed job was seen within the attempt budget.
        MultipleJobsFoundError: If several jobs match and the policy is ``fail``.
    """
    settings = settings or get_wait_settings()
    timeout = settings.default_timeout_seconds if timeout_seconds is None else timeout_seconds
    attempts = max_attempts(timeout, settings.poll_interval_seconds)
    selector = format_label_selector(labels)
    last_error: str | None = None

    for attempt in range(1, attempts + 1):
        try:
            jobs = await client.list_jobs(namespace, selector)
        except Exception as e:
            last_error = str(e)
            log.warning("job_list_failed", selector=selector, namespace=namespace, attempt=attempt, error=last_error)
        else:
            if len(jobs) > 1:
                if settings.multiple_jobs_policy == "fail":
                    raise MultipleJobsFoundError(len(jobs), selector, timeout)
                last_error = f"Found multiple jobs: {len(jobs)}"
                log.warning("multiple_jobs_found", selector=selector, namespace=namespace, count=len(jobs))
            elif not jobs:
                log.info("job_not_found", selector=selector, namespace=namespace, attempt=attempt)
            elif jobs[0].get("completion_time"):
                job = jobs[0]
                log.info("job_completed", job=job.get("name"), namespace=namespace, attempt=attempt)
                return job.get("conditions") or []
            else:
                log.info("job_not_complete", job=jobs[0].get("name"), namespace=namespace, attempt=attempt)

        log.info("job_wait_requeue", attempt=attempt, max_attempts=attempts)
        await asyncio.sleep(settings.poll_interval_seconds)

    log.error("job_wait_timed_out", selector=selector, namespace=namespace, timeout_seconds=timeout)
    raise JobWaitTimeoutError(timeout, attempts, last_error)


async def kube_job_wait_handler(
    resolver: ClientResolver,
    labels: dict[str, str],
    namespace: str = "default",
    cluster_name: str | None = None,
    timeout: int | None = None,
    token: str | None = None,
    settings: WaitSettings | None = None,
) -> JobWaitOutput:
    """Resolve a client for the cluster and wait for the job to complete."""
    settings = settings or get_wait_settings()
    validate_label_selector(labels)
    validate_namespace(namespace)
    if timeout is not None:
        validate_timeout(timeout)

    client = await asyncio.to_thread(resolver.get_resource_client, cluster_name, token)
    try:
        conditions = await wait_for_job(labels, namespace, client, timeout, settings)
    finally:
        client.close()

    return JobWaitOutput(
        cluster=client.cluster or "default",
        namespace=namespace,
        label_selector=format_label_selector(labels),
        conditions=[JobCondition.model_validate(c) for c in conditions],
        timestamp=datetime.now(tz=UTC).isoformat(),
    )
