"""Resolve trusted controller service accounts to UIDs.

Trust is keyed on the service account UID rather than its name: deleting and recreating an account
with the same name yields a new UID, so a same-named impostor is not trusted.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import FrozenSet, Iterable, List, Optional, Set, Tuple

from sidecar_injector.config import InjectorConfig
from sidecar_injector.core.errors import InjectorConfigError, TrustResolutionError
from sidecar_injector.providers.k8s_provider import ServiceAccountReader

logger = logging.getLogger(__name__)


def parse_service_account_list(raw: str) -> List[Tuple[str, str]]:
    """
    Parse a comma-separated `namespace:name` list.

    Blank input yields []. A malformed entry raises `InjectorConfigError`.
    """
    out: List[Tuple[str, str]] = []
    for entry in (raw or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = [p.strip() for p in entry.split(":")]
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise InjectorConfigError(f"service account '{entry}' does not follow the 'namespace:name' format")
        out.append((parts[0], parts[1]))
    return out


def trusted_identities(config: InjectorConfig) -> List[Tuple[str, str]]:
    """Built-in controllers plus admin-configured accounts, de-duplicated, in declaration order."""
    seen: Set[Tuple[str, str]] = set()
    out: List[Tuple[str, str]] = []
    builtin = parse_service_account_list(",".join(config.trusted_controllers))
    configured = parse_service_account_list(config.allowed_service_accounts)
    for ident in builtin + configured:
        if ident in seen:
            continue
        seen.add(ident)
        out.append(ident)
    return out


def _fold(outcomes: Iterable[Tuple[Tuple[str, str], Optional[str]]]) -> FrozenSet[str]:
    uids: Set[str] = set()
    for (namespace, name), uid in outcomes:
        if not uid:
            logger.debug("Trusted service account %s/%s not found; skipping", namespace, name)
            continue
        uids.add(uid)
    return frozenset(uids)


def resolve_trusted_uids(
    config: InjectorConfig,
    reader: ServiceAccountReader,
    *,
    max_workers: Optional[int] = None,
) -> FrozenSet[str]:
    """
    Resolve every trusted identity to its current UID.

    - accounts that do not exist are skipped
    - any other failure aborts the whole resolution with `TrustResolutionError`
      (a degraded API connection must not produce a smaller trust set)
    """
    identities = trusted_identities(config)
    if not identities:
        return frozenset()

    workers = max(1, min(max_workers or config.trust_resolve_workers, len(identities)))
    outcomes: List[Tuple[Tuple[str, str], Optional[str]]] = []

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trust-resolve")
    try:
        futures = {executor.submit(reader.get_service_account_uid, ns, name): (ns, name) for ns, name in identities}
        for fut in as_completed(futures):
            ns, name = futures[fut]
            try:
                outcomes.append(((ns, name), fut.result()))
            except Exception as e:
                raise TrustResolutionError(f"failed to resolve service account {ns}/{name}: {e}") from e
    finally:
        # On abort, drop lookups that have not started yet.
        executor.shutdown(wait=True, cancel_futures=True)

    uids = _fold(outcomes)
    logger.info("Resolved %d trusted service account UID(s) from %d identities", len(uids), len(identities))
    return uids
