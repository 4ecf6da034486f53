"""Resolve a logical cluster name and optional bearer token into client credentials."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from kubernetes import client as k8s_client

from kube_actions_mcp.clients import load_k8s_api_client
from kube_actions_mcp.clients.k8s_resources import K8sResourceClient
from kube_actions_mcp.config import ClusterProfile, ClusterRegistry

log = structlog.get_logger()

ApiT = TypeVar("ApiT")


@dataclass(frozen=True)
class ResolvedCluster:
    name: str
    server: str
    skip_tls_verify: bool = False
    ca_data: str | None = None


@dataclass(frozen=True)
class ResolvedUser:
    name: str
    token: str | None = field(default=None, repr=False)
    auth_provider: str | None = None


@dataclass(frozen=True)
class ResolvedClientConfig:
    """A usable credential set: one cluster, one user, one active context.

    The ambient variant carries no cluster or user and stands for the
    environment's own kubeconfig or in-cluster service account.
    """

    cluster: ResolvedCluster | None = None
    user: ResolvedUser | None = None
    context_name: str | None = None
    fallback_reason: str | None = None

    @classmethod
    def ambient(cls, reason: str | None = None) -> ResolvedClientConfig:
        return cls(fallback_reason=reason)

    @classmethod
    def from_profile(cls, profile: ClusterProfile) -> ResolvedClientConfig:
        cluster = ResolvedCluster(
            name=profile.name,
            server=profile.server,
            skip_tls_verify=profile.skip_tls_verify,
            ca_data=profile.ca_data,
        )
        user = ResolvedUser(
            name=profile.name,
            token=profile.service_account_token,
            auth_provider="oidc" if profile.auth_provider == "oidc" else None,
        )
        return cls(cluster=cluster, user=user, context_name=profile.name)

    @property
    def is_ambient(self) -> bool:
        return self.cluster is None

    def to_kubeconfig(self) -> dict[str, Any]:
        """Render as a kubeconfig dict suitable for new_client_from_config_dict."""
        if self.cluster is None or self.user is None:
            msg = "Ambient credentials have no explicit kubeconfig representation."
            raise ValueError(msg)

        cluster_entry: dict[str, Any] = {"server": self.cluster.server}
        if self.cluster.skip_tls_verify:
            cluster_entry["insecure-skip-tls-verify"] = True
        if self.cluster.ca_data:
            cluster_entry["certificate-authority-data"] = self.cluster.ca_data

        # The oidc marker stays on ResolvedUser: the SDK would try to refresh a
        # kubeconfig auth-provider entry, while the caller's token is already final.
        user_entry: dict[str, Any] = {}
        if self.user.token:
            user_entry["token"] = self.user.token

        return {
            "apiVersion": "v1",
            "kind": "Config",
            "clusters": [{"name": self.cluster.name, "cluster": cluster_entry}],
            "users": [{"name": self.user.name, "user": user_entry}],
            "contexts": [
                {
                    "name": self.context_name,
                    "context": {"cluster": self.cluster.name, "user": self.user.name},
                }
            ],
            "current-context": self.context_name,
        }


@dataclass(frozen=True)
class Fallback:
    """Signal from a resolution step that ambient credentials must be used."""

    reason: str


@dataclass(frozen=True)
class ResolutionRequest:
    cluster_name: str | None
    profile: ClusterProfile | None
    token: str | None = field(default=None, repr=False)


# A step returns a usable config, a Fallback, or None to let the next step decide.
ResolutionStep = Callable[[ResolutionRequest], "ResolvedClientConfig | Fallback | None"]


def require_cluster_name(request: ResolutionRequest) -> Fallback | None:
    if not request.cluster_name:
        return Fallback("No configured clusters available")
    return None


def require_profile(request: ResolutionRequest) -> Fallback | None:
    if request.profile is None:
        return Fallback(f'No configuration found for Kubernetes cluster "{request.cluster_name}"')
    return None


def resolve_oidc(request: ResolutionRequest) -> ResolvedClientConfig | Fallback | None:
    """Build a fresh config carrying the caller's token for an OIDC cluster."""
    profile = request.profile
    if profile is None or profile.auth_provider != "oidc":
        return None
    if not request.token:
        return Fallback(f'No user token provided for OIDC cluster "{profile.name}"')
    if not profile.server:
        return Fallback(f'No cluster configuration found for OIDC cluster "{profile.name}"')

    cluster = ResolvedCluster(
        name=profile.name,
        server=profile.server,
        skip_tls_verify=profile.skip_tls_verify,
        ca_data=profile.ca_data,
    )
    user = ResolvedUser(name=profile.name, token=request.token, auth_provider="oidc")
    return ResolvedClientConfig(cluster=cluster, user=user, context_name=profile.name)


def resolve_static(request: ResolutionRequest) -> ResolvedClientConfig | None:
    if request.profile is None:
        return None
    return ResolvedClientConfig.from_profile(request.profile)


DEFAULT_RESOLUTION_STEPS: tuple[ResolutionStep, ...] = (
    require_cluster_name,
    require_profile,
    resolve_oidc,
    resolve_static,
)


class ClientResolver:
    """Turns a cluster name plus optional token into a ResolvedClientConfig.

    Resolution never raises: every failure degrades to ambient credentials with
    the reason logged.
    """

    def __init__(
        self,
        registry: ClusterRegistry,
        steps: tuple[ResolutionStep, ...] = DEFAULT_RESOLUTION_STEPS,
    ) -> None:
        self._registry = registry
        self._steps = steps

    @property
    def registry(self) -> ClusterRegistry:
        return self._registry

    def effective_cluster_name(self, cluster_name: str | None) -> str | None:
        """Return the requested name, else the first registered cluster, else None."""
        if cluster_name:
            return cluster_name
        default = self._registry.default_name()
        if default is not None:
            log.info("using_default_cluster", cluster=default)
        return default

    def resolve(self, cluster_name: str | None = None, token: str | None = None) -> ResolvedClientConfig:
        try:
            name = self.effective_cluster_name(cluster_name)
            request = ResolutionRequest(
                cluster_name=name,
                profile=self._registry.get(name) if name else None,
                token=token,
            )
            for step in self._steps:
                outcome = step(request)
                if outcome is None:
                    continue
                if isinstance(outcome, Fallback):
                    return self._fallback(outcome.reason)
                auth_provider = outcome.user.auth_provider if outcome.user else None
                log.info("using_cluster_config", cluster=name, auth_provider=auth_provider)
                return outcome
            return self._fallback(f'No resolution step matched cluster "{name}"')
        except Exception as e:
            return self._fallback(f"Failed to resolve cluster configuration: {e}")

    def _fallback(self, reason: str) -> ResolvedClientConfig:
        log.info("falling_back_to_default_kubeconfig", reason=reason)
        return ResolvedClientConfig.ambient(reason)

    def get_api_client(self, cluster_name: str | None = None, token: str | None = None) -> k8s_client.ApiClient:
        return load_k8s_api_client(self.resolve(cluster_name, token))

    def get_typed_client(
        self,
        api_type: Callable[[k8s_client.ApiClient], ApiT],
        cluster_name: str | None = None,
        token: str | None = None,
    ) -> ApiT:
        """Build a typed API client (e.g. ``BatchV1Api``) for the resolved cluster."""
        return api_type(self.get_api_client(cluster_name, token))

    def get_resource_client(self, cluster_name: str | None = None, token: str | None = None) -> K8sResourceClient:
        """Build a generic resource client that works with any apiVersion and kind."""
        resolved = self.resolve(cluster_name, token)
        cluster = resolved.cluster.name if resolved.cluster else None
        return K8sResourceClient(load_k8s_api_client(resolved), cluster=cluster)
