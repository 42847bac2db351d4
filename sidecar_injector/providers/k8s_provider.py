"""Kubernetes API client for the read-only lookups the injector needs."""

from __future__ import annotations

import threading
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from sidecar_injector.core.errors import ClusterReadError

_core_v1_api = None
_config_loaded = False
_init_lock = threading.Lock()


@runtime_checkable
class ServiceAccountReader(Protocol):
    def get_service_account_uid(self, namespace: str, name: str) -> Optional[str]:
        """Return the account's current UID, or None when it does not exist."""
        ...


class DefaultK8sProvider:
    def get_service_account_uid(self, namespace: str, name: str) -> Optional[str]:
        return get_service_account_uid(namespace, name)


def get_k8s_provider() -> DefaultK8sProvider:
    """Seam for swapping provider implementations (tests inject fakes through the engine options)."""
    return DefaultK8sProvider()


def _get_core_v1():
    """
    Return a cached CoreV1Api client.

    Both config loading (in-cluster, falling back to kubeconfig) and the API object are cached so
    repeated lookups do not re-initialize the client.
    """
    global _core_v1_api, _config_loaded

    if _core_v1_api is not None:
        return _core_v1_api

    with _init_lock:
        if _core_v1_api is not None:
            return _core_v1_api

        try:
            from kubernetes import client, config
        except Exception as import_err:
            raise ClusterReadError(f"Kubernetes client not available: {import_err}") from import_err

        if not _config_loaded:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                config.load_kube_config()
            _config_loaded = True

        _core_v1_api = client.CoreV1Api()
        return _core_v1_api


def _is_not_found(err: Exception) -> bool:
    return getattr(err, "status", None) == 404


def get_service_account_info(namespace: str, name: str) -> Optional[Dict[str, Any]]:
    """
    Read a ServiceAccount and return the metadata the injector keys trust on.

    Returns None when the account does not exist; raises `ClusterReadError` for anything else
    (connectivity, RBAC, ...).

    NOTE: token/secret references are deliberately not read.
    """
    if not namespace or not name:
        raise ClusterReadError("ServiceAccount name/namespace required")
    try:
        v1 = _get_core_v1()
        sa = v1.read_namespaced_service_account(name=name, namespace=namespace)
    except Exception as e:
        if _is_not_found(e):
            return None
        raise ClusterReadError(f"Failed to fetch ServiceAccount {namespace}/{name}: {e}") from e

    metadata = getattr(sa, "metadata", None)
    return {
        "name": getattr(metadata, "name", None) if metadata else None,
        "namespace": getattr(metadata, "namespace", None) if metadata else None,
        "uid": getattr(metadata, "uid", None) if metadata else None,
    }


def get_service_account_uid(namespace: str, name: str) -> Optional[str]:
    info = get_service_account_info(namespace, name)
    if info is None:
        return None
    return info.get("uid") or None
