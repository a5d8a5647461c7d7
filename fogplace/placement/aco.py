"""Ant colony placement.

Pheromone lives in a ``[node, module]`` matrix. Each ant walks the module
list once, choosing among nodes that still fit on its own copy of the
ledgers with probability proportional to ``pheromone^alpha * (1/latency)^beta``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from fogplace.application import Application
from fogplace.ledger import DeviceState
from fogplace.placement.base import PlacementHeuristic
from fogplace.request import SUCCESS, PlacementOutcome, PlacementRequest

logger = logging.getLogger(__name__)

MIN_LATENCY = 0.01


def roulette_select(weights: np.ndarray, draw: float) -> int:
    """Index picked by a uniform ``draw`` in [0, 1); zero-weight slots are never returned."""
    cumulative = np.cumsum(weights)
    threshold = draw * cumulative[-1]
    chosen = int(np.searchsorted(cumulative, threshold, side="right"))
    return min(chosen, int(np.flatnonzero(weights)[-1]))


@dataclass
class Ant:
    node_indices: List[int] = field(default_factory=list)
    latencies: List[float] = field(default_factory=list)

    @property
    def total_latency(self) -> float:
        return float(sum(self.latencies))

    @property
    def current(self) -> Optional[int]:
        return self.node_indices[-1] if self.node_indices else None


class AntColonyHeuristic(PlacementHeuristic):
    name = "ACO"

    def device_states(self) -> List[DeviceState]:
        return self._ledgers

    def _latency(self, a: int, b: int) -> float:
        return self.topology.latency(a, b)

    def _walk(self, modules: List[str], app: Application, entry: int, pheromone: np.ndarray) -> Optional[Ant]:
        params = self.config.aco
        working = [ledger.copy() for ledger in self._ledgers]
        ant = Ant()
        for j, name in enumerate(modules):
            module = app.module(name)
            origin = entry if ant.current is None else working[ant.current].node_id
            weights = np.zeros(len(working))
            latencies = np.zeros(len(working))
            for i, ledger in enumerate(working):
                if not ledger.can_fit(module.cpu, module.ram, module.storage):
                    continue
                latency = self._latency(origin, ledger.node_id)
                latencies[i] = latency
                niu = 1.0 / (latency if latency > 0 else MIN_LATENCY)
                weights[i] = pheromone[i, j] ** params.alpha * niu ** params.beta
            if not np.any(weights > 0):
                return None
            chosen = roulette_select(weights, self.rng.random())
            working[chosen].allocate(module.cpu, module.ram, module.storage)
            ant.node_indices.append(chosen)
            ant.latencies.append(float(latencies[chosen]))
        return ant

    def _search(self, modules: List[str], app: Application, entry: int) -> Optional[List[int]]:
        params = self.config.aco
        pheromone = np.full((len(self._ledgers), len(modules)), params.tau0, dtype=float)
        best: Optional[Ant] = None
        for _ in range(params.iterations):
            ants: List[Ant] = []
            for _ in range(params.ants):
                ant = self._walk(modules, app, entry, pheromone)
                if ant is None:
                    return None
                ants.append(ant)
            superior = min(ants, key=lambda a: a.total_latency)
            if best is None or superior.total_latency < best.total_latency:
                best = superior
            pheromone *= 1.0 - params.rho
            for j, i in enumerate(superior.node_indices):
                pheromone[i, j] += params.delta_tau
        if best is None:
            return None
        return [self._ledgers[i].node_id for i in best.node_indices]

    def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
        for name in modules:
            self._check_exhaustion(app.module(name))
        placement = self._search(modules, app, self.entry_nodes[request.key])
        if placement is None:
            logger.debug(
                f"ACO found no placement for sensor {request.sensor_id}, request {request.request_index}"
            )
            return self._failure()

        by_id: Dict[int, DeviceState] = {ledger.node_id: ledger for ledger in self._ledgers}
        for name, node_id in zip(modules, placement):
            module = app.module(name)
            by_id[node_id].allocate(module.cpu, module.ram, module.storage)
        self._commit(request, app, modules, placement)
        return SUCCESS
