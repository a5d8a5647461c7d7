"""Error taxonomy for the placement engine and its deployment protocol."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    PLACEMENT_FAILURE = "placement_failure"
    PROTOCOL_INTEGRITY = "protocol_integrity"
    ROUTING = "routing"
    TIMEOUT = "timeout"
    RESOURCE_EXHAUSTION = "resource_exhaustion"
    CONFIGURATION = "configuration"


class FogPlaceError(Exception):
    kind: ErrorKind = ErrorKind.PROTOCOL_INTEGRITY


class ProtocolIntegrityError(FogPlaceError):
    """Something the protocol guarantees to exist was not found. Fatal."""

    kind = ErrorKind.PROTOCOL_INTEGRITY


class RoutingError(ProtocolIntegrityError):
    kind = ErrorKind.ROUTING


class ConfigurationError(FogPlaceError):
    kind = ErrorKind.CONFIGURATION
