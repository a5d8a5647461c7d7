from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

from ortools.sat.python import cp_model

from fogplace.application import Application
from fogplace.ledger import DeviceState
from fogplace.placement.base import PlacementHeuristic
from fogplace.request import SUCCESS, PlacementOutcome, PlacementRequest

logger = logging.getLogger(__name__)


class ILPHeuristic(PlacementHeuristic):
    """Feasibility model solved with CP-SAT.

    Nodes are CPU/RAM capacity bins (free capacity rounded down, demands
    rounded up) and every module instance must run on exactly one of them.
    Storage is not part of the model: the solver's assignment is re-checked
    with ``can_fit`` against the live ledgers and the whole request is
    rejected if any module no longer fits.
    """

    name = "ILP"

    def device_states(self) -> List[DeviceState]:
        return self._ledgers

    def _solve(self, modules: List[str], app: Application) -> Optional[List[int]]:
        model = cp_model.CpModel()
        x = {}
        for i in range(len(modules)):
            for j in range(len(self._ledgers)):
                x[(i, j)] = model.NewBoolVar(f"x_{i}_{j}")

        # every module runs on exactly one node
        for i in range(len(modules)):
            model.Add(sum(x[(i, j)] for j in range(len(self._ledgers))) == 1)

        for j, ledger in enumerate(self._ledgers):
            cpu_cap = max(0, math.floor(ledger.free_cpu))
            ram_cap = max(0, math.floor(ledger.free_ram))
            model.Add(sum(math.ceil(app.module(m).cpu) * x[(i, j)] for i, m in enumerate(modules)) <= cpu_cap)
            model.Add(sum(math.ceil(app.module(m).ram) * x[(i, j)] for i, m in enumerate(modules)) <= ram_cap)

        solver = cp_model.CpSolver()
        solver.parameters.max_time_in_seconds = self.config.solver.max_time_in_seconds
        solver.parameters.num_workers = self.config.solver.workers
        solver.parameters.random_seed = self.config.seed
        res = solver.Solve(model)
        if res not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            logger.debug(f"CP-SAT status {solver.StatusName(res)}")
            return None

        placement: List[int] = []
        for i in range(len(modules)):
            for j, ledger in enumerate(self._ledgers):
                if solver.Value(x[(i, j)]):
                    placement.append(ledger.node_id)
                    break
        return placement

    def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
        if not self._ledgers:
            return self._failure()
        for name in modules:
            self._check_exhaustion(app.module(name))

        placement = self._solve(modules, app)
        if placement is None:
            logger.info(
                f"ILP infeasible for sensor {request.sensor_id}, request {request.request_index}"
            )
            return self._failure()

        by_id: Dict[int, DeviceState] = {ledger.node_id: ledger for ledger in self._ledgers}
        assigned: List[Optional[int]] = [None] * len(modules)
        for i, (name, node_id) in enumerate(zip(modules, placement)):
            module = app.module(name)
            ledger = by_id[node_id]
            if not ledger.can_fit(module.cpu, module.ram, module.storage):
                logger.warning(
                    f"Solver assignment of {name} to node {node_id} fails validation, rejecting request "
                    f"(sensor {request.sensor_id}, request {request.request_index})"
                )
                self._rollback(by_id, app, modules, assigned)
                return self._failure()
            ledger.allocate(module.cpu, module.ram, module.storage)
            assigned[i] = node_id

        self._commit(request, app, modules, placement)
        return SUCCESS
