"""Input validation helpers for MCP tool parameters."""

from __future__ import annotations

import re

# RFC 1123 label: lowercase alphanumeric and hyphens, 1-63 chars, starts/ends with alphanumeric
_NAMESPACE_RE = re.compile(r"^[a-z0-9]([a-z0-9\-]{0,61}[a-z0-9])?$")

# Label key: optional DNS subdomain prefix, then a 1-63 char name
_LABEL_PREFIX_RE = re.compile(r"^[a-z0-9]([a-z0-9\-.]{0,251}[a-z0-9])?$")
_LABEL_NAME_RE = re.compile(r"^[A-Za-z0-9]([A-Za-z0-9_.\-]{0,61}[A-Za-z0-9])?$")
_LABEL_VALUE_RE = re.compile(r"^([A-Za-z0-9]([A-Za-z0-9_.\-]{0,61}[A-Za-z0-9])?)?$")

# "v1" or "group/version"
_API_VERSION_RE = re.compile(r"^([a-z0-9]([a-z0-9\-.]*[a-z0-9])?/)?v[0-9]+((alpha|beta)[0-9]+)?$")


def validate_namespace(namespace: str | None) -> None:
    """Validate a Kubernetes namespace name against RFC 1123."""
    if namespace is None:
        return
    if not _NAMESPACE_RE.match(namespace):
        msg = f"Invalid namespace: {namespace!r}. Must be a valid RFC 1123 label."
        raise ValueError(msg)


def validate_label_selector(labels: dict[str, str]) -> None:
    """Validate an equality-based label selector mapping."""
    if not labels:
        msg = "Label selector must contain at least one label."
        raise ValueError(msg)
    for key, value in labels.items():
        prefix, slash, name = key.rpartition("/")
        if (slash and not _LABEL_PREFIX_RE.match(prefix)) or not _LABEL_NAME_RE.match(name):
            msg = f"Invalid label key: {key!r}."
            raise ValueError(msg)
        if not isinstance(value, str) or not _LABEL_VALUE_RE.match(value):
            msg = f"Invalid label value for {key!r}: {value!r}."
            raise ValueError(msg)


def validate_timeout(timeout: int | float) -> None:
    if timeout <= 0:
        msg = f"Invalid timeout: {timeout!r}. Must be a positive number of seconds."
        raise ValueError(msg)


def validate_api_version(api_version: str) -> None:
    if not _API_VERSION_RE.match(api_version):
        msg = f"Invalid apiVersion: {api_version!r}. Expected 'v1' or 'group/version'."
        raise ValueError(msg)


def validate_resource_name(kind: str, name: str) -> None:
    if not kind:
        msg = "Resource kind must not be empty."
        raise ValueError(msg)
    if not name:
        msg = f"Resource name for kind {kind!r} must not be empty."
        raise ValueError(msg)
