from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fogplace.application import Application
from fogplace.ledger import DeviceState
from fogplace.placement.base import PlacementHeuristic
from fogplace.request import SUCCESS, PlacementOutcome, PlacementRequest
from fogplace.resolver import next_layer
from fogplace.topology import NodeRole

logger = logging.getLogger(__name__)


class EdgewardHeuristic(PlacementHeuristic):
    """Layer-by-layer placement that starts at the request's entry node.

    Modules of the current layer that do not fit are pushed one level up
    the tree; running out of parents fails the request.
    """

    name = "Edgeward"

    def reset(self, topology, applications, resources, requests) -> None:
        self._extra: Dict[int, DeviceState] = {}
        super().reset(topology, applications, resources, requests)

    def device_states(self) -> List[DeviceState]:
        return self._ledgers

    def _working_ledgers(self) -> Dict[int, DeviceState]:
        ledgers = super()._working_ledgers()
        ledgers.update(self._extra)
        return ledgers

    def _ledger(self, node_id: int) -> Optional[DeviceState]:
        for ledger in self._ledgers:
            if ledger.node_id == node_id:
                return ledger
        if node_id not in self._extra:
            node = self.topology.node(node_id)
            if node.role == NodeRole.USER:
                return None
            ledger = self.resources.ledger_for(node_id, node.cpu, node.ram, node.storage)
            load = self._pinned_load.get(node_id)
            if load:
                ledger.allocate(*load)
            self._extra[node_id] = ledger
        return self._extra[node_id]

    def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
        wanted = set(modules)
        placed = set(self.mapped[request.key])
        order: List[str] = []
        hosts: List[Optional[int]] = []
        ledgers: Dict[int, DeviceState] = {}
        node_id: Optional[int] = self.entry_nodes[request.key]

        while True:
            layer = [m for m in next_layer(app, placed) if m in wanted]
            if not layer:
                break
            ledger = self._ledger(node_id)
            left = []
            for name in layer:
                module = app.module(name)
                if ledger is not None and ledger.can_fit(module.cpu, module.ram, module.storage):
                    ledger.allocate(module.cpu, module.ram, module.storage)
                    ledgers[node_id] = ledger
                    order.append(name)
                    hosts.append(node_id)
                    placed.add(name)
                else:
                    left.append(name)
            if left:
                node_id = self.topology.parent_of(node_id)
                if node_id is None:
                    logger.info(
                        f"Edgeward ran out of parents for {left} (sensor {request.sensor_id}, "
                        f"request {request.request_index})"
                    )
                    self._rollback(ledgers, app, order, hosts)
                    return self._failure()

        self._commit(request, app, order, hosts)
        return SUCCESS
