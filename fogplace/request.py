from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, NamedTuple, Optional


class RequestKey(NamedTuple):
    sensor_id: int
    request_index: int


class FailureReason(Enum):
    PLACEMENT_FAILED = "placement_failed"
    USER_LACKED_RESOURCES = "user_lacked_resources"


@dataclass(eq=False)
class PlacementRequest:
    """A client's demand to place the rest of an application's module chain.

    Identity is ``(sensor_id, request_index)``; ``placed`` keeps insertion
    order and grows as the engine places modules for this request.
    """

    application_id: str
    sensor_id: int
    request_index: int
    requester_id: int
    placed: Dict[str, int] = field(default_factory=dict)
    user_type: str = "generic"
    request_latency: float = 0.0

    @property
    def key(self) -> RequestKey:
        return RequestKey(self.sensor_id, self.request_index)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlacementRequest):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)


@dataclass(frozen=True)
class PlacementOutcome:
    forward_to: Optional[int] = None
    reason: Optional[FailureReason] = None

    @property
    def ok(self) -> bool:
        return self.forward_to is None

    @classmethod
    def failed(cls, forward_to: int, reason: FailureReason = FailureReason.PLACEMENT_FAILED) -> "PlacementOutcome":
        return cls(forward_to=forward_to, reason=reason)


SUCCESS = PlacementOutcome()
