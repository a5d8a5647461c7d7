from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

from fogplace.application import Application
from fogplace.ledger import DeviceState
from fogplace.placement.base import PlacementHeuristic
from fogplace.request import SUCCESS, PlacementOutcome, PlacementRequest

logger = logging.getLogger(__name__)


def acceptance_probability(current: float, neighbour: float, temperature: float) -> float:
    if neighbour < current:
        return 1.0
    return math.exp((current - neighbour) / temperature)


class SimulatedAnnealingHeuristic(PlacementHeuristic):
    """Anneals a first-fit placement towards lower latency from the entry node.

    Every trial works on value copies of the cycle's ledgers; the shared
    ledgers are only touched once the best-seen placement is committed.
    """

    name = "SimulatedAnnealing"

    def device_states(self) -> List[DeviceState]:
        return self._ledgers

    def _cost(self, entry: int, placement: List[int]) -> float:
        return sum(self.topology.latency(entry, node_id) for node_id in placement)

    def _copies(self) -> Dict[int, DeviceState]:
        return {ledger.node_id: ledger.copy() for ledger in self._ledgers}

    def _initial(self, modules: List[str], app: Application) -> Optional[List[int]]:
        working = self._copies()
        placement: List[int] = []
        for name in modules:
            module = app.module(name)
            for ledger in working.values():
                if ledger.can_fit(module.cpu, module.ram, module.storage):
                    ledger.allocate(module.cpu, module.ram, module.storage)
                    placement.append(ledger.node_id)
                    break
            else:
                return None
        return placement

    def _neighbour(self, modules: List[str], app: Application, current: List[int]) -> Optional[List[int]]:
        index = self.rng.randrange(len(modules))
        working = self._copies()
        for i, (name, node_id) in enumerate(zip(modules, current)):
            if i == index:
                continue
            module = app.module(name)
            working[node_id].allocate(module.cpu, module.ram, module.storage)
        module = app.module(modules[index])
        fitting = [
            ledger.node_id
            for ledger in working.values()
            if ledger.can_fit(module.cpu, module.ram, module.storage)
        ]
        if not fitting:
            return None
        neighbour = list(current)
        neighbour[index] = fitting[self.rng.randrange(len(fitting))]
        return neighbour

    def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
        params = self.config.annealing
        entry = self.entry_nodes[request.key]
        for name in modules:
            self._check_exhaustion(app.module(name))

        best = self._initial(modules, app)
        if best is None:
            logger.debug(
                f"Annealing aborted, no first-fit placement for sensor {request.sensor_id}, "
                f"request {request.request_index}"
            )
            return self._failure()

        current = list(best)
        current_cost = best_cost = self._cost(entry, best)
        temperature = params.initial_temperature
        while temperature > params.min_temperature:
            neighbour = self._neighbour(modules, app, current)
            if neighbour is not None:
                neighbour_cost = self._cost(entry, neighbour)
                if self.rng.random() < acceptance_probability(current_cost, neighbour_cost, temperature):
                    current, current_cost = neighbour, neighbour_cost
                if current_cost < best_cost:
                    best, best_cost = list(current), current_cost
            temperature *= params.cooling_factor

        by_id = {ledger.node_id: ledger for ledger in self._ledgers}
        for name, node_id in zip(modules, best):
            module = app.module(name)
            by_id[node_id].allocate(module.cpu, module.ram, module.storage)
        self._commit(request, app, modules, best)
        return SUCCESS
