"""Exception hierarchy for the injector.

Callers that only care about "something in the injector failed" can catch `InjectorError`;
the transport maps the narrower types onto HTTP status codes.
"""

from __future__ import annotations


class InjectorError(Exception):
    pass


class InjectorConfigError(InjectorError):
    """Invalid configuration; raised while constructing the engine, never at request time."""


class PatternError(InjectorConfigError):
    """Malformed `namespace:serviceaccount` matcher pattern."""


class ClusterReadError(InjectorError):
    """A cluster read failed for a reason other than the object not existing."""


class TrustResolutionError(InjectorError):
    """Trusted controller UIDs could not be resolved; no partial result is returned."""


class ReadinessTimeoutError(InjectorError):
    def __init__(self, message: str = "timed out waiting for injector to become ready") -> None:
        super().__init__(message)


class EngineStateError(InjectorError):
    pass


class EngineNotReadyError(EngineStateError):
    pass


class PatchError(InjectorError):
    pass
