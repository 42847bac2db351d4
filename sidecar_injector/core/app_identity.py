from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from sidecar_injector.core.models import AdmissionRequest, PodManifest

logger = logging.getLogger(__name__)

APP_ID_ANNOTATION = "injector.sidecar.io/app-id"


def decode_pod(raw: Any) -> Optional[PodManifest]:
    """
    Decode the object embedded in an admission request as a pod manifest.

    Accepts an already-parsed dict or raw JSON (bytes/str). Returns None for empty or
    undecodable payloads.
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            return None
    if not isinstance(raw, dict) or not raw:
        return None
    try:
        return PodManifest.model_validate(raw)
    except ValidationError as e:
        logger.debug("Could not decode admission object as a pod: %s", e)
        return None


def get_app_id(request: Optional[AdmissionRequest]) -> str:
    """
    Best-effort application id for the pod in `request`.

    Order: app-id annotation, then pod name, then "". Never raises.
    """
    if request is None:
        return ""
    return app_id_from_pod(decode_pod(request.object))


def app_id_from_pod(pod: Optional[PodManifest]) -> str:
    if pod is None:
        return ""
    app_id = pod.metadata.annotations.get(APP_ID_ANNOTATION) or ""
    if app_id:
        return app_id
    return pod.metadata.name or ""
