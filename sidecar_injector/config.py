from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

# Controllers that create pods on behalf of users. Requests from these accounts are trusted by UID.
# Namespaces/names reflect upstream kube-controller-manager and Tekton defaults; distributions that
# rename them can override the list with TRUSTED_CONTROLLERS.
DEFAULT_TRUSTED_CONTROLLERS: Tuple[str, ...] = (
    "kube-system:replicaset-controller",
    "kube-system:replication-controller",
    "kube-system:deployment-controller",
    "kube-system:cronjob-controller",
    "kube-system:job-controller",
    "kube-system:statefulset-controller",
    "kube-system:daemon-set-controller",
    "tekton-pipelines:tekton-pipelines-controller",
)


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name, "") or "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _split_csv(raw: str) -> List[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


@dataclass(frozen=True)
class InjectorConfig:
    # Passed through to the patch generator
    sidecar_image: str = ""
    sidecar_image_pull_policy: str = "IfNotPresent"

    # Namespace the injector (control plane) runs in
    namespace: str = "default"

    # `ns-pattern:sa-pattern` list compiled into the matcher (blank = no pattern-based allowance)
    allowed_service_accounts_prefix_names: str = ""
    # `namespace:name` list resolved to UIDs together with the trusted controllers
    allowed_service_accounts: str = ""

    control_plane_trust_domain: str = "cluster.local"

    trusted_controllers: Tuple[str, ...] = DEFAULT_TRUSTED_CONTROLLERS

    # Resolver/initialization tuning
    trust_resolve_workers: int = 4
    init_retry_seconds: float = 5.0

    # TLS material for the HTTPS listener (optional for local runs)
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None


@lru_cache(maxsize=1)
def load_injector_config() -> InjectorConfig:
    """
    Load injector configuration from environment variables.

    Validation happens in `new_engine`, not here, so a bad value is reported once, at startup.
    """
    trusted = _split_csv(os.getenv("TRUSTED_CONTROLLERS", ""))
    workers = _env_int("TRUST_RESOLVE_WORKERS", 4)
    if workers < 1:
        workers = 1

    return InjectorConfig(
        sidecar_image=_env_str("SIDECAR_IMAGE"),
        sidecar_image_pull_policy=_env_str("SIDECAR_IMAGE_PULL_POLICY", "IfNotPresent"),
        namespace=_env_str("NAMESPACE", "default"),
        allowed_service_accounts_prefix_names=_env_str("ALLOWED_SERVICE_ACCOUNTS_PREFIX_NAMES"),
        allowed_service_accounts=_env_str("ALLOWED_SERVICE_ACCOUNTS"),
        control_plane_trust_domain=_env_str("CONTROL_PLANE_TRUST_DOMAIN", "cluster.local"),
        trusted_controllers=tuple(trusted) if trusted else DEFAULT_TRUSTED_CONTROLLERS,
        trust_resolve_workers=workers,
        init_retry_seconds=max(0.1, _env_float("INIT_RETRY_SECONDS", 5.0)),
        tls_cert_file=_env_str("TLS_CERT_FILE") or None,
        tls_key_file=_env_str("TLS_KEY_FILE") or None,
    )
