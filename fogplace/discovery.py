from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from fogplace.errors import ProtocolIntegrityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceDiscoveryEntry:
    microservice: str
    node_id: int
    sensor_id: int
    request_index: int


class ServiceDiscoveryIndex:
    """Request-aware service discovery held by one node.

    Entries are kept in a flat list and indexed by microservice name. A
    lookup is scoped to the originating sensor and request index so that
    traffic for one request never reaches an instance placed for another.
    """

    def __init__(self, owner_id: int) -> None:
        self.owner_id = owner_id
        self._entries: List[ServiceDiscoveryEntry] = []
        self._by_service: Dict[str, List[ServiceDiscoveryEntry]] = {}

    def add(self, microservice: str, node_id: int, sensor_id: int, request_index: int) -> ServiceDiscoveryEntry:
        entry = ServiceDiscoveryEntry(microservice, node_id, sensor_id, request_index)
        self._entries.append(entry)
        self._by_service.setdefault(microservice, []).append(entry)
        logger.debug(
            f"Service discovery on node {self.owner_id}: added {microservice} -> {node_id} "
            f"(sensor {sensor_id}, request {request_index})"
        )
        return entry

    def remove(self, microservice: str, node_id: int, sensor_id: int, request_index: int) -> None:
        bucket = self._by_service.get(microservice, [])
        for entry in bucket:
            if entry.node_id == node_id and entry.sensor_id == sensor_id and entry.request_index == request_index:
                bucket.remove(entry)
                self._entries.remove(entry)
                if not bucket:
                    del self._by_service[microservice]
                return
        raise ProtocolIntegrityError(
            f"Service discovery entry not found on node {self.owner_id}: "
            f"microservice={microservice}, node={node_id}, sensor={sensor_id}, request={request_index}"
        )

    def lookup(self, microservice: str, sensor_id: int, request_index: int) -> Optional[int]:
        for entry in self._by_service.get(microservice, []):
            if entry.sensor_id == sensor_id and entry.request_index == request_index:
                return entry.node_id
        return None

    def require(self, microservice: str, sensor_id: int, request_index: int) -> int:
        node_id = self.lookup(microservice, sensor_id, request_index)
        if node_id is None:
            raise ProtocolIntegrityError(
                f"No service discovery entry on node {self.owner_id} for {microservice} "
                f"(sensor {sensor_id}, request {request_index})"
            )
        return node_id

    def entries(self) -> List[ServiceDiscoveryEntry]:
        return list(self._entries)

    def entries_for(self, microservice: str) -> List[ServiceDiscoveryEntry]:
        return list(self._by_service.get(microservice, []))

    def __len__(self) -> int:
        return len(self._entries)
