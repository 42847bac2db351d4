from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol

from sidecar_injector.config import InjectorConfig
from sidecar_injector.core.errors import PatchError
from sidecar_injector.core.models import AdmissionRequest, PatchOperation, PodManifest

logger = logging.getLogger(__name__)

# Pod annotation that opts a pod into injection.
INJECT_ANNOTATION = "injector.sidecar.io/enabled"

SIDECAR_CONTAINER_NAME = "sidecar"


class PatchGenerator(Protocol):
    def get_patch(self, request: AdmissionRequest, pod: PodManifest, *, app_id: str) -> List[PatchOperation]:
        """Return JSON-patch operations for `pod` (empty when nothing should change)."""
        ...


def should_inject(pod: PodManifest) -> bool:
    """Injection is opt-in: only pods annotated with a truthy `injector.sidecar.io/enabled`."""
    raw = (pod.metadata.annotations.get(INJECT_ANNOTATION) or "").strip().lower()
    return raw in ("1", "true", "yes", "y", "on")


def _has_sidecar(containers: List[Dict[str, Any]]) -> bool:
    return any(isinstance(c, dict) and c.get("name") == SIDECAR_CONTAINER_NAME for c in containers)


class SidecarPatcher:
    """
    Minimal patch generator: appends one sidecar container.

    The control-plane namespace and trust domain are passed to the sidecar through env vars; they
    are not interpreted here.
    """

    def __init__(self, config: InjectorConfig) -> None:
        self._config = config

    def sidecar_container(self, *, app_id: str, pod_namespace: str) -> Dict[str, Any]:
        return {
            "name": SIDECAR_CONTAINER_NAME,
            "image": self._config.sidecar_image,
            "imagePullPolicy": self._config.sidecar_image_pull_policy,
            "env": [
                {"name": "APP_ID", "value": app_id},
                {"name": "NAMESPACE", "value": pod_namespace},
                {"name": "CONTROL_PLANE_NAMESPACE", "value": self._config.namespace},
                {"name": "CONTROL_PLANE_TRUST_DOMAIN", "value": self._config.control_plane_trust_domain},
            ],
        }

    def get_patch(self, request: AdmissionRequest, pod: PodManifest, *, app_id: str) -> List[PatchOperation]:
        if not should_inject(pod):
            return []

        containers = pod.spec.get("containers")
        if not isinstance(containers, list) or not containers:
            raise PatchError("pod spec has no containers")
        if _has_sidecar(containers):
            logger.debug("Pod %s already has a %s container; skipping", app_id or "<unknown>", SIDECAR_CONTAINER_NAME)
            return []

        pod_namespace = request.namespace or pod.metadata.namespace or ""
        return [
            PatchOperation(
                op="add",
                path="/spec/containers/-",
                value=self.sidecar_container(app_id=app_id, pod_namespace=pod_namespace),
            )
        ]
