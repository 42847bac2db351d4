from __future__ import annotations

import base64
import json

from sidecar_injector.core.models import (
    AdmissionDecision,
    AdmissionRequest,
    AdmissionReview,
    PatchOperation,
    Requester,
    UserInfo,
)


def test_requester_from_service_account_username() -> None:
    r = Requester.from_user_info(
        UserInfo(username="system:serviceaccount:kube-system:replicaset-controller", uid="u1", groups=["g"])
    )
    assert r.is_service_account
    assert r.namespace == "kube-system"
    assert r.service_account == "replicaset-controller"
    assert r.uid == "u1"
    assert r.groups == ("g",)


def test_requester_from_user_username() -> None:
    r = Requester.from_user_info(UserInfo(username="alice@example.com", uid="u2"))
    assert not r.is_service_account
    assert r.namespace is None
    assert r.service_account is None


def test_requester_rejects_malformed_service_account_username() -> None:
    for username in ("system:serviceaccount:", "system:serviceaccount:ns", "system:serviceaccount:ns:a:b"):
        assert not Requester.from_user_info(UserInfo(username=username)).is_service_account


def test_requester_from_none() -> None:
    assert Requester.from_user_info(None) == Requester()


def test_admission_request_parses_camel_case_fields() -> None:
    req = AdmissionRequest.model_validate(
        {"uid": "x", "userInfo": {"username": "u", "uid": "1"}, "dryRun": True, "unknownField": 1}
    )
    assert req.user_info.username == "u"
    assert req.dry_run is True


def test_respond_with_patch() -> None:
    review = AdmissionReview.model_validate({"request": {"uid": "abc"}})
    decision = AdmissionDecision(allowed=True, patch=[PatchOperation(op="add", path="/a", value=1)])
    out = review.respond(decision).model_dump(mode="json", by_alias=True, exclude_none=True)

    assert out["response"]["uid"] == "abc"
    assert out["response"]["patchType"] == "JSONPatch"
    assert json.loads(base64.b64decode(out["response"]["patch"])) == [{"op": "add", "path": "/a", "value": 1}]
    assert "status" not in out["response"]


def test_respond_denied_sets_status() -> None:
    review = AdmissionReview.model_validate({"request": {"uid": "abc"}})
    out = review.respond(AdmissionDecision(allowed=False, message="nope")).model_dump(by_alias=True, exclude_none=True)
    assert out["response"]["allowed"] is False
    assert out["response"]["status"]["message"] == "nope"
    assert "patch" not in out["response"]
