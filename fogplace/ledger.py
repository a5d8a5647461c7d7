from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from functools import total_ordering
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CPU = "cpu"
RAM = "ram"
STORAGE = "storage"
RESOURCES = (CPU, RAM, STORAGE)


def _util(free: float, total: float) -> float:
    if total <= 0:
        return 1.0
    return 1.0 - free / total


@total_ordering
@dataclass
class DeviceState:
    """Capacity bookkeeping for one node.

    Heuristics take value copies of these for trial placements; only
    ``allocate`` and ``deallocate`` change the free amounts, and neither
    clamps. Callers allocate after a successful ``can_fit`` and deallocate
    only to undo an earlier allocate.
    """

    node_id: int
    total_cpu: float
    total_ram: float
    total_storage: float
    free_cpu: Optional[float] = None
    free_ram: Optional[float] = None
    free_storage: Optional[float] = None

    def __post_init__(self) -> None:
        if self.free_cpu is None:
            self.free_cpu = self.total_cpu
        if self.free_ram is None:
            self.free_ram = self.total_ram
        if self.free_storage is None:
            self.free_storage = self.total_storage

    def can_fit(self, cpu: float, ram: float, storage: float) -> bool:
        return (
            self.free_cpu >= cpu
            and self.free_ram >= ram
            and self.free_storage >= storage
        )

    def allocate(self, cpu: float, ram: float, storage: float) -> None:
        self.free_cpu -= cpu
        self.free_ram -= ram
        self.free_storage -= storage

    def deallocate(self, cpu: float, ram: float, storage: float) -> None:
        self.free_cpu += cpu
        self.free_ram += ram
        self.free_storage += storage

    @property
    def cpu_util(self) -> float:
        return _util(self.free_cpu, self.total_cpu)

    @property
    def ram_util(self) -> float:
        return _util(self.free_ram, self.total_ram)

    @property
    def storage_util(self) -> float:
        return _util(self.free_storage, self.total_storage)

    def utilization(self) -> Tuple[float, float, float]:
        return self.cpu_util, self.ram_util, self.storage_util

    def sort_key(self) -> Tuple[float, float, int]:
        return self.cpu_util, self.ram_util, self.node_id

    def copy(self) -> "DeviceState":
        return DeviceState(
            node_id=self.node_id,
            total_cpu=self.total_cpu,
            total_ram=self.total_ram,
            total_storage=self.total_storage,
            free_cpu=self.free_cpu,
            free_ram=self.free_ram,
            free_storage=self.free_storage,
        )

    def __lt__(self, other: "DeviceState") -> bool:
        if not isinstance(other, DeviceState):
            return NotImplemented
        return self.sort_key() < other.sort_key()


class ResourceAvailability:
    """Authoritative free-resource snapshot kept by the orchestrating node.

    Updates are signed deltas so that lifecycle events arriving from
    different paths can be applied in any order.
    """

    def __init__(self, initial: Optional[Dict[int, Dict[str, float]]] = None) -> None:
        self._free: Dict[int, Dict[str, float]] = {}
        for node_id, resources in (initial or {}).items():
            self.initialize(node_id, resources)

    def initialize(self, node_id: int, resources: Dict[str, float]) -> None:
        self._free[node_id] = {name: float(resources.get(name, 0.0)) for name in RESOURCES}

    def apply_delta(self, node_id: int, deltas: Dict[str, float]) -> None:
        current = self._free.get(node_id)
        if current is None:
            logger.debug(f"Resource delta for unknown node {node_id}, creating entry")
            self._free[node_id] = {name: float(value) for name, value in deltas.items()}
            return
        for name, value in deltas.items():
            current[name] = current.get(name, 0.0) + float(value)

    def consume(self, node_id: int, cpu: float, ram: float, storage: float, count: int = 1) -> None:
        self.apply_delta(node_id, {CPU: -cpu * count, RAM: -ram * count, STORAGE: -storage * count})

    def get(self, node_id: int, resource: str) -> Optional[float]:
        if node_id not in self._free:
            return None
        return self._free[node_id].get(resource)

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._free

    def snapshot(self) -> Dict[int, Dict[str, float]]:
        return copy.deepcopy(self._free)

    def ledger_for(self, node_id: int, total_cpu: float, total_ram: float, total_storage: float) -> DeviceState:
        free = self._free.get(node_id, {})
        return DeviceState(
            node_id=node_id,
            total_cpu=total_cpu,
            total_ram=total_ram,
            total_storage=total_storage,
            free_cpu=free.get(CPU, total_cpu),
            free_ram=free.get(RAM, total_ram),
            free_storage=free.get(STORAGE, total_storage),
        )
