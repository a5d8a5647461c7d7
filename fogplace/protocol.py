"""Management protocol exchanged between simulated nodes.

Every message carries exactly the payload its kind needs; the pairing is
checked when a message is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Tuple

from fogplace.decision import ModuleLaunchConfig
from fogplace.discovery import ServiceDiscoveryEntry
from fogplace.errors import ProtocolIntegrityError, RoutingError
from fogplace.request import PlacementRequest


class MessageKind(Enum):
    PLACEMENT_REQUEST = 1
    SERVICE_DISCOVERY_UPDATE = 2
    RESOURCE_DELTA = 3
    DEPLOYMENT_REQUEST = 4
    INSTALL_NOTIFICATION = 5
    DATA_FORWARD = 6


class DiscoveryAction(Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class DiscoveryUpdate:
    action: DiscoveryAction
    entry: ServiceDiscoveryEntry


@dataclass(frozen=True)
class ResourceDelta:
    node_id: int
    deltas: Dict[str, float]


@dataclass(frozen=True)
class DeploymentRequest:
    cycle_number: int
    launches: Dict[str, List[ModuleLaunchConfig]]  # app id -> modules


@dataclass(frozen=True)
class InstallNotification:
    node_id: int
    cycle_number: int


@dataclass
class DataMessage:
    """Data-plane tuple that starts (or continues) a request's execution."""

    app_id: str
    sensor_id: int
    request_index: int
    source_module: str
    dest_module: str
    tuple_type: str = ""
    source_node: int = -1
    traversed: List[Tuple[int, str]] = field(default_factory=list)


PAYLOAD_TYPES = {
    MessageKind.PLACEMENT_REQUEST: PlacementRequest,
    MessageKind.SERVICE_DISCOVERY_UPDATE: DiscoveryUpdate,
    MessageKind.RESOURCE_DELTA: ResourceDelta,
    MessageKind.DEPLOYMENT_REQUEST: DeploymentRequest,
    MessageKind.INSTALL_NOTIFICATION: InstallNotification,
    MessageKind.DATA_FORWARD: DataMessage,
}


@dataclass
class ProtocolMessage:
    kind: MessageKind
    source_id: int
    destination_id: int
    payload: Any
    # 0 until the sending agent stamps it from its scheduler
    message_id: int = 0
    hops: int = 0

    def __post_init__(self) -> None:
        if self.destination_id is None or self.destination_id < 0:
            raise RoutingError(f"{self.kind.name} message has no destination ({self.destination_id})")
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise ProtocolIntegrityError(
                f"{self.kind.name} message carries {type(self.payload).__name__}, expected {expected.__name__}"
            )
