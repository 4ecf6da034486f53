"""Exceptions raised by the apply, delete, and job wait operations."""

from __future__ import annotations


class KubeActionsError(Exception):
    """Base class for errors surfaced to callers."""


class ResourceNotFoundError(KubeActionsError):
    """The API server reported that a resource does not exist (HTTP 404)."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(f"{kind} '{name}' not found{where}")


class JobWaitError(KubeActionsError):
    """Waiting for a job ended without a completed job."""


class JobWaitTimeoutError(JobWaitError):
    def __init__(self, timeout_seconds: float, attempts: int, last_error: str | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.attempts = attempts
        self.last_error = last_error
        msg = f"Timed out after {timeout_seconds:g} seconds waiting for job to complete ({attempts} attempts)"
        if last_error:
            msg = f"{msg}; last error: {last_error}"
        super().__init__(msg)


class MultipleJobsFoundError(JobWaitError):
    def __init__(self, count: int, selector: str, timeout_seconds: float) -> None:
        self.count = count
        self.selector = selector
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Found {count} jobs matching '{selector}' while waiting up to {timeout_seconds:g} seconds; "
            "expected exactly one"
        )
