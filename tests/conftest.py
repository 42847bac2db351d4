"""
Pytest config.

Local imports like `import sidecar_injector` rely on the repo root being on sys.path; when a global
`pytest` entrypoint is used that does not always happen during collection, so pin it here.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


class FakeServiceAccountReader:
    """In-memory stand-in for the cluster read API."""

    def __init__(
        self,
        accounts: Optional[Dict[Tuple[str, str], str]] = None,
        *,
        errors: Optional[Dict[Tuple[str, str], Exception]] = None,
    ) -> None:
        self.accounts = dict(accounts or {})
        self.errors = dict(errors or {})
        self.calls = []
        self._lock = threading.Lock()

    def get_service_account_uid(self, namespace: str, name: str) -> Optional[str]:
        with self._lock:
            self.calls.append((namespace, name))
        err = self.errors.get((namespace, name))
        if err is not None:
            raise err
        return self.accounts.get((namespace, name))


def make_reader(uids: Iterable[Tuple[str, str, str]] = (), **kwargs) -> FakeServiceAccountReader:
    return FakeServiceAccountReader({(ns, name): uid for ns, name, uid in uids}, **kwargs)


@pytest.fixture(autouse=True)
def _clear_config_cache():
    from sidecar_injector.config import load_injector_config

    load_injector_config.cache_clear()
    yield
    load_injector_config.cache_clear()


@pytest.fixture
def builtin_reader() -> FakeServiceAccountReader:
    """Cluster where only the two most common built-in controllers exist."""
    return make_reader(
        [
            ("kube-system", "replicaset-controller", "uid-replicaset"),
            ("tekton-pipelines", "tekton-pipelines-controller", "uid-tekton"),
        ]
    )


@pytest.fixture
def reader_factory():
    return make_reader
