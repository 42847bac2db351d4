"""Admission wire models and the decision returned by the engine.

Design note:
- Wire models mirror `admission.k8s.io/v1` field names through camelCase aliases and tolerate
  unknown fields (`extra="allow"`) because API servers add fields over time.
- The embedded object is kept as raw JSON (dict/bytes/str); pod decoding happens lazily and is
  allowed to fail (see `sidecar_injector.core.app_identity`).
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

ADMISSION_API_VERSION = "admission.k8s.io/v1"
SERVICE_ACCOUNT_USER_PREFIX = "system:serviceaccount:"
SYSTEM_MASTERS_GROUP = "system:masters"


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class GroupVersionKind(BaseModelAllowExtra):
    group: str = ""
    version: str = ""
    kind: str = ""


class UserInfo(BaseModelAllowExtra):
    username: str = ""
    uid: str = ""
    groups: List[str] = Field(default_factory=list)


class AdmissionRequest(BaseModelAllowExtra):
    uid: str = ""
    kind: GroupVersionKind = Field(default_factory=GroupVersionKind)
    namespace: Optional[str] = None
    name: Optional[str] = None
    operation: str = ""
    user_info: UserInfo = Field(default_factory=UserInfo, alias="userInfo")
    object: Any = None
    dry_run: Optional[bool] = Field(default=None, alias="dryRun")


class ObjectMeta(BaseModelAllowExtra):
    name: str = ""
    namespace: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    @classmethod
    def _null_name(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("annotations", "labels", mode="before")
    @classmethod
    def _null_mapping(cls, v: Any) -> Any:
        return {} if v is None else v


class PodManifest(BaseModelAllowExtra):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: Dict[str, Any] = Field(default_factory=dict)

    # `null` metadata or spec is treated as absent.
    @field_validator("metadata", "spec", mode="before")
    @classmethod
    def _null_section(cls, v: Any) -> Any:
        return {} if v is None else v


class PatchOperation(BaseModelStrict):
    op: Literal["add", "remove", "replace", "test", "move", "copy"]
    path: str
    value: Any = None


class AdmissionDecision(BaseModelStrict):
    allowed: bool
    patch: List[PatchOperation] = Field(default_factory=list)
    message: Optional[str] = None
    app_id: str = ""
    # Short machine-readable label for logs/tests (e.g. "patched", "unauthorized-requester").
    reason: str = ""


class AdmissionStatus(BaseModelAllowExtra):
    message: str = ""


class AdmissionResponse(BaseModelAllowExtra):
    uid: str = ""
    allowed: bool
    patch: Optional[str] = None
    patch_type: Optional[str] = Field(default=None, alias="patchType")
    status: Optional[AdmissionStatus] = None


class AdmissionReview(BaseModelAllowExtra):
    api_version: str = Field(default=ADMISSION_API_VERSION, alias="apiVersion")
    kind: str = "AdmissionReview"
    request: Optional[AdmissionRequest] = None
    response: Optional[AdmissionResponse] = None

    def respond(self, decision: AdmissionDecision) -> "AdmissionReview":
        """Build the response review for `decision`, echoing the request uid."""
        resp = AdmissionResponse(uid=self.request.uid if self.request else "", allowed=decision.allowed)
        if decision.patch:
            ops = [op.model_dump(mode="json") for op in decision.patch]
            resp.patch = base64.b64encode(json.dumps(ops).encode("utf-8")).decode("ascii")
            resp.patch_type = "JSONPatch"
        if not decision.allowed and decision.message:
            resp.status = AdmissionStatus(message=decision.message)
        return AdmissionReview(apiVersion=self.api_version or ADMISSION_API_VERSION, response=resp)


@dataclass(frozen=True)
class Requester:
    """Identity of the caller that created the admission request."""

    username: str = ""
    uid: str = ""
    groups: Tuple[str, ...] = ()
    namespace: Optional[str] = None
    service_account: Optional[str] = None

    @classmethod
    def from_user_info(cls, user_info: Optional[UserInfo]) -> "Requester":
        if user_info is None:
            return cls()
        username = user_info.username or ""
        namespace = service_account = None
        if username.startswith(SERVICE_ACCOUNT_USER_PREFIX):
            parts = username[len(SERVICE_ACCOUNT_USER_PREFIX) :].split(":")
            if len(parts) == 2 and parts[0] and parts[1]:
                namespace, service_account = parts
        return cls(
            username=username,
            uid=user_info.uid or "",
            groups=tuple(user_info.groups or ()),
            namespace=namespace,
            service_account=service_account,
        )

    @property
    def is_service_account(self) -> bool:
        return self.namespace is not None and self.service_account is not None
