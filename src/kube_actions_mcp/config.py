"""Cluster registry, app-config loading, and environment variable overrides."""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

log = structlog.get_logger()

AuthProvider = Literal["serviceAccount", "oidc", "unsupported"]

_SUPPORTED_AUTH_PROVIDERS = {"serviceAccount", "oidc"}


@dataclass(frozen=True)
class ClusterProfile:
    """Static description of how to reach and authenticate to one cluster."""

    name: str
    server: str
    auth_provider: AuthProvider
    skip_tls_verify: bool = False
    ca_data: str | None = None
    service_account_token: str | None = field(default=None, repr=False)


class ClusterEntry(BaseModel):
    """One entry of ``kubernetes.clusterLocatorMethods[].clusters[]``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    url: str
    auth_provider: str = Field(alias="authProvider")
    skip_tls_verify: bool = Field(default=False, alias="skipTLSVerify")
    ca_data: str | None = Field(default=None, alias="caData")
    service_account_token: str | None = Field(default=None, alias="serviceAccountToken", repr=False)

    @model_validator(mode="after")
    def require_token_for_service_account(self) -> ClusterEntry:
        if self.auth_provider == "serviceAccount" and not self.service_account_token:
            msg = f"Cluster '{self.name}' uses authProvider serviceAccount but has no serviceAccountToken."
            raise ValueError(msg)
        return self

    def to_profile(self) -> ClusterProfile:
        if self.auth_provider == "serviceAccount":
            return ClusterProfile(
                name=self.name,
                server=self.url,
                auth_provider="serviceAccount",
                skip_tls_verify=self.skip_tls_verify,
                ca_data=self.ca_data,
                service_account_token=self.service_account_token,
            )
        # OIDC tokens arrive per call, unsupported providers carry no credentials at all
        provider: AuthProvider = "oidc" if self.auth_provider == "oidc" else "unsupported"
        return ClusterProfile(
            name=self.name,
            server=self.url,
            auth_provider=provider,
            skip_tls_verify=self.skip_tls_verify,
            ca_data=self.ca_data,
        )


class ClusterRegistry:
    """Read-only, insertion-ordered mapping of cluster name to ClusterProfile."""

    def __init__(self, profiles: Mapping[str, ClusterProfile] | None = None) -> None:
        self._profiles: Mapping[str, ClusterProfile] = MappingProxyType(dict(profiles or {}))

    def get(self, name: str) -> ClusterProfile | None:
        return self._profiles.get(name)

    def default_name(self) -> str | None:
        """Return the first registered cluster name, or None for an empty registry."""
        return next(iter(self._profiles), None)

    def names(self) -> list[str]:
        return list(self._profiles)

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def __repr__(self) -> str:
        return f"ClusterRegistry({self.names()!r})"


def _parse_locator(locator: Any, profiles: dict[str, ClusterProfile]) -> None:
    if not isinstance(locator, dict):
        msg = f"Cluster locator must be a mapping, got {type(locator).__name__}."
        raise ValueError(msg)

    locator_type = locator.get("type")
    if locator_type != "config":
        log.info("cluster_locator_unsupported", locator_type=locator_type)
        return

    clusters = locator.get("clusters") or []
    if not isinstance(clusters, list):
        msg = f"'clusters' must be a list, got {type(clusters).__name__}."
        raise ValueError(msg)

    for raw in clusters:
        entry = ClusterEntry.model_validate(raw)
        if entry.auth_provider not in _SUPPORTED_AUTH_PROVIDERS:
            log.warning("unsupported_auth_provider", cluster=entry.name, auth_provider=entry.auth_provider)
        if entry.name in profiles:
            log.warning("duplicate_cluster_name", cluster=entry.name)
        profiles[entry.name] = entry.to_profile()
        log.info("cluster_registered", cluster=entry.name, auth_provider=entry.auth_provider)


def build_cluster_registry(config_tree: Mapping[str, Any] | None) -> ClusterRegistry:
    """Build the cluster registry from a static app-config tree.

    Never raises. A missing ``kubernetes`` section yields an empty registry, and
    any configuration error is logged as a warning and also yields an empty
    registry, so callers always fall back to ambient credentials.
    """
    if not config_tree or "kubernetes" not in config_tree:
        log.info("no_kubernetes_config", detail="will use default kubeconfig")
        return ClusterRegistry()

    profiles: dict[str, ClusterProfile] = {}
    try:
        kubernetes_section = config_tree["kubernetes"] or {}
        if not isinstance(kubernetes_section, dict):
            msg = f"'kubernetes' must be a mapping, got {type(kubernetes_section).__name__}."
            raise ValueError(msg)
        locators = kubernetes_section.get("clusterLocatorMethods") or []
        if not isinstance(locators, list):
            msg = f"'clusterLocatorMethods' must be a list, got {type(locators).__name__}."
            raise ValueError(msg)
        for locator in locators:
            _parse_locator(locator, profiles)
    except Exception as e:
        log.warning("cluster_config_invalid", error=str(e), detail="will use default kubeconfig")
        return ClusterRegistry()

    log.info("clusters_initialized", count=len(profiles))
    return ClusterRegistry(profiles)


def load_config_tree(path: Path | None = None) -> dict[str, Any]:
    """Read the app-config YAML file.

    Reads the file path from the ``KUBE_ACTIONS_CONFIG`` environment variable,
    defaulting to ``app-config.yaml`` in the current working directory. Returns
    an empty tree when the file is missing or malformed.
    """
    if path is None:
        path = Path(os.environ.get("KUBE_ACTIONS_CONFIG", "app-config.yaml"))

    if not path.exists():
        log.warning("app_config_not_found", path=str(path))
        return {}

    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        log.warning("app_config_unreadable", path=str(path), error=str(e))
        return {}

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        log.warning("app_config_not_a_mapping", path=str(path), type=type(raw).__name__)
        return {}
    return raw


def load_cluster_registry(path: Path | None = None) -> ClusterRegistry:
    """Load the app-config file and build the cluster registry from it."""
    return build_cluster_registry(load_config_tree(path))


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_POLL_INTERVAL_SECONDS = 5.0
DEFAULT_JOB_TIMEOUT_SECONDS = 60


@dataclass(frozen=True)
class WaitSettings:
    """Job polling settings with environment variable overrides."""

    poll_interval_seconds: float = field(default_factory=lambda: float(os.environ.get("KUBE_JOB_POLL_INTERVAL", "5")))
    default_timeout_seconds: int = field(
        default_factory=lambda: int(os.environ.get("KUBE_JOB_DEFAULT_TIMEOUT", "60"))
    )
    multiple_jobs_policy: Literal["retry", "fail"] = field(
        default_factory=lambda: _multiple_jobs_policy(os.environ.get("KUBE_JOB_MULTIPLE_MATCH_POLICY", "retry"))
    )

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            log.warning("invalid_poll_interval", value=self.poll_interval_seconds, using=DEFAULT_POLL_INTERVAL_SECONDS)
            object.__setattr__(self, "poll_interval_seconds", DEFAULT_POLL_INTERVAL_SECONDS)
        if self.default_timeout_seconds <= 0:
            log.warning(
                "invalid_default_timeout", value=self.default_timeout_seconds, using=DEFAULT_JOB_TIMEOUT_SECONDS
            )
            object.__setattr__(self, "default_timeout_seconds", DEFAULT_JOB_TIMEOUT_SECONDS)


def _multiple_jobs_policy(value: str) -> Literal["retry", "fail"]:
    value = value.strip().lower()
    if value == "fail":
        return "fail"
    if value != "retry":
        log.warning("invalid_multiple_jobs_policy", value=value, using="retry")
    return "retry"


@dataclass(frozen=True)
class ApplySettings:
    """Apply settings with environment variable overrides."""

    strict_not_found: bool = field(default_factory=lambda: _env_bool("KUBE_APPLY_STRICT_NOT_FOUND", "false"))


def get_wait_settings() -> WaitSettings:
    """Return job wait settings with environment variable overrides applied."""
    return WaitSettings()


def get_apply_settings() -> ApplySettings:
    """Return apply settings with environment variable overrides applied."""
    return ApplySettings()
