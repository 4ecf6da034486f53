"""Pydantic v2 models for tool outputs, and output scrubbing."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field

# --- Output scrubbing ---

_BEARER_PATTERN = re.compile(r"\bBearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE)
_JWT_PATTERN = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]*")
_TOKEN_FIELD_PATTERN = re.compile(r"(['\"]?token['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]+", re.IGNORECASE)


def scrub_sensitive_values(text: str) -> str:
    """Remove bearer tokens, JWTs, and token fields from text.

    Resource names and namespaces are preserved.
    """
    if not text:
        return text
    result = _BEARER_PATTERN.sub("Bearer [REDACTED]", text)
    result = _JWT_PATTERN.sub("[REDACTED_TOKEN]", result)
    result = _TOKEN_FIELD_PATTERN.sub(r"\1[REDACTED]", result)
    return result


# --- Apply models ---


class AppliedResource(BaseModel):
    """Summary of one created or patched resource."""

    api_version: str | None = None
    kind: str | None = None
    name: str | None = None
    namespace: str | None = None
    uid: str | None = None
    resource_version: str | None = None

    @classmethod
    def from_resource(cls, resource: dict[str, Any]) -> AppliedResource:
        metadata = resource.get("metadata") or {}
        return cls(
            api_version=resource.get("apiVersion"),
            kind=resource.get("kind"),
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
        )


class ApplyOutput(BaseModel):
    """Output for kube_apply."""

    cluster: str
    resources: list[AppliedResource]
    summary: str
    timestamp: str


# --- Delete models ---


class DeleteOutput(BaseModel):
    """Output for kube_delete."""

    cluster: str
    api_version: str
    kind: str
    name: str
    namespace: str | None = None
    status: str | None = None
    timestamp: str


# --- Job wait models ---


class JobCondition(BaseModel):
    """One terminal condition of a completed job."""

    type: str
    status: str
    reason: str | None = None
    message: str | None = None
    last_transition_time: str | None = None


class JobWaitOutput(BaseModel):
    """Output for kube_job_wait."""

    cluster: str
    namespace: str
    label_selector: str
    conditions: list[JobCondition] = Field(default_factory=list)
    timestamp: str
