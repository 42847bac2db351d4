"""Admission decision engine.

Lifecycle: CONSTRUCTING -> INITIALIZING -> READY.

- `new_engine` validates configuration and returns an engine in INITIALIZING (or raises).
- `initialize` resolves trusted controller UIDs and moves to READY, opening the readiness gate.
- READY is terminal for the process lifetime.

Everything the request path reads (config, matcher, trusted UIDs) is immutable once published,
so `handle_request` takes no locks.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import FrozenSet, Optional

from sidecar_injector.config import InjectorConfig
from sidecar_injector.core.allowlist import resolve_trusted_uids, trusted_identities
from sidecar_injector.core.app_identity import app_id_from_pod, decode_pod
from sidecar_injector.core.errors import EngineNotReadyError, EngineStateError, PatchError
from sidecar_injector.core.matcher import NamespacedNameMatcher, build_matcher
from sidecar_injector.core.models import SYSTEM_MASTERS_GROUP, AdmissionDecision, AdmissionRequest, Requester
from sidecar_injector.core.readiness import ReadinessGate
from sidecar_injector.patch.sidecar import PatchGenerator, SidecarPatcher
from sidecar_injector.providers.k8s_provider import ServiceAccountReader

logger = logging.getLogger(__name__)


class EngineState(str, enum.Enum):
    CONSTRUCTING = "constructing"
    INITIALIZING = "initializing"
    READY = "ready"


@dataclass(frozen=True)
class InjectorOptions:
    config: InjectorConfig
    reader: ServiceAccountReader
    patcher: Optional[PatchGenerator] = None


def _validate_config(config: InjectorConfig) -> Optional[NamespacedNameMatcher]:
    # Parses both the built-in and the configured account lists.
    trusted_identities(config)

    pattern = (config.allowed_service_accounts_prefix_names or "").strip()
    if not pattern:
        return None
    return build_matcher(pattern)


class InjectorEngine:
    def __init__(
        self,
        *,
        config: InjectorConfig,
        matcher: Optional[NamespacedNameMatcher],
        reader: ServiceAccountReader,
        patcher: PatchGenerator,
    ) -> None:
        self._state = EngineState.CONSTRUCTING
        self._config = config
        self._matcher = matcher
        self._reader = reader
        self._patcher = patcher
        self._trusted_uids: FrozenSet[str] = frozenset()
        self._gate = ReadinessGate()
        self._init_lock = threading.Lock()
        self._state = EngineState.INITIALIZING

    @property
    def config(self) -> InjectorConfig:
        return self._config

    @property
    def matcher(self) -> Optional[NamespacedNameMatcher]:
        return self._matcher

    @property
    def trusted_uids(self) -> FrozenSet[str]:
        return self._trusted_uids

    @property
    def state(self) -> EngineState:
        return self._state

    def initialize(self) -> None:
        """
        Resolve trusted controller UIDs, then mark the engine READY.

        On failure the engine stays INITIALIZING and the call may be retried. Calling this on a
        READY engine raises `EngineStateError`.
        """
        with self._init_lock:
            if self._state is EngineState.READY:
                raise EngineStateError("injector is already initialized")
            uids = resolve_trusted_uids(self._config, self._reader)
            self._trusted_uids = uids
            self._state = EngineState.READY
            self._gate.open()
        logger.info("Injector ready (trusted_uids=%d, matcher_rules=%d)", len(uids), self._matcher_rule_count())

    def ready(self, timeout: Optional[float] = None) -> None:
        """Block until initialization completes; raises `ReadinessTimeoutError` after `timeout` seconds."""
        self._gate.wait(timeout)

    def _matcher_rule_count(self) -> int:
        return len(self._matcher.rules) if self._matcher is not None else 0

    def is_authorized(self, requester: Requester) -> bool:
        if requester.uid and requester.uid in self._trusted_uids:
            return True
        if SYSTEM_MASTERS_GROUP in requester.groups:
            return True
        if self._matcher is not None and requester.is_service_account:
            return self._matcher.matches(requester.namespace or "", requester.service_account or "")
        return False

    def handle_request(self, request: Optional[AdmissionRequest]) -> AdmissionDecision:
        """
        Decide allow/deny/mutate for one admission request.

        Unauthorized requesters are allowed without a patch: the pod is still created, it just
        does not get a sidecar.
        """
        if self._state is not EngineState.READY:
            raise EngineNotReadyError("injector is not ready")
        if request is None:
            return AdmissionDecision(allowed=False, message="admission request is missing", reason="missing-request")

        kind = request.kind.kind
        if kind != "Pod":
            return AdmissionDecision(allowed=False, message=f"invalid kind for review: {kind}", reason="invalid-kind")

        # Decoded once; the app id and the patch generator both read this pod.
        pod = decode_pod(request.object)
        app_id = app_id_from_pod(pod)
        requester = Requester.from_user_info(request.user_info)

        if not self.is_authorized(requester):
            logger.warning(
                "Requester '%s' is not on the list of allowed controller accounts; skipping injection for %s",
                requester.username,
                app_id or "<unknown>",
            )
            return AdmissionDecision(allowed=True, app_id=app_id, reason="unauthorized-requester")

        if pod is None:
            return AdmissionDecision(
                allowed=False, app_id=app_id, message="could not decode pod from admission request", reason="bad-pod"
            )

        try:
            patch = self._patcher.get_patch(request, pod, app_id=app_id)
        except PatchError as e:
            logger.warning("Patch generation failed for %s: %s", app_id or "<unknown>", e)
            return AdmissionDecision(allowed=False, app_id=app_id, message=str(e), reason="patch-error")

        if not patch:
            return AdmissionDecision(allowed=True, app_id=app_id, reason="no-patch")
        logger.info("Injecting sidecar into %s (ops=%d)", app_id or "<unknown>", len(patch))
        return AdmissionDecision(allowed=True, patch=patch, app_id=app_id, reason="patched")


def new_engine(options: InjectorOptions) -> InjectorEngine:
    """
    Validate configuration and build an engine.

    Raises `InjectorConfigError` (including `PatternError`); never returns a partially valid engine.
    """
    config = options.config
    matcher = _validate_config(config)
    patcher = options.patcher if options.patcher is not None else SidecarPatcher(config)
    return InjectorEngine(config=config, matcher=matcher, reader=options.reader, patcher=patcher)
