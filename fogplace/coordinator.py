"""Cycle-numbered deployment barrier.

For every placement decision the coordinator keeps a checklist of the
nodes that must report an installed deployment, plus the node that starts
execution for each request. Execution is triggered once the checklist is
complete, and never for a cycle whose timeout fired first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from fogplace.config import PlacementConfig
from fogplace.errors import ErrorKind, ProtocolIntegrityError
from fogplace.metrics import PlacementMonitor
from fogplace.protocol import InstallNotification
from fogplace.request import PlacementRequest
from fogplace.simulator import Event, EventScheduler, EventTag

logger = logging.getLogger(__name__)


class CycleState(Enum):
    OPEN = "open"
    WAITING = "waiting"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"


@dataclass
class Cycle:
    number: int
    checklist: Dict[int, bool]
    to_send: Dict[PlacementRequest, int]
    opened_at: float
    state: CycleState = CycleState.OPEN
    closed_at: Optional[float] = None
    triggered: List[PlacementRequest] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        return self.state in (CycleState.COMPLETE, CycleState.TIMED_OUT)

    def all_acknowledged(self) -> bool:
        return all(self.checklist.values())


@dataclass
class PlacementDecisionNotice:
    """What the orchestrating node sends before deploying a decision."""

    cycle_number: int
    nodes: List[int]
    targets: Dict[PlacementRequest, int]


ExecuteCallback = Callable[[PlacementRequest, int, int], None]


class DeploymentCoordinator:
    def __init__(
        self,
        scheduler: EventScheduler,
        coordinator_id: int,
        config: Optional[PlacementConfig] = None,
        monitor: Optional[PlacementMonitor] = None,
        retain_cycles: int = 64,
    ) -> None:
        self.scheduler = scheduler
        self.coordinator_id = coordinator_id
        self.config = config or PlacementConfig()
        self.monitor = monitor
        self.retain_cycles = retain_cycles
        self.on_execute: Optional[ExecuteCallback] = None
        self._cycles: Dict[int, Cycle] = {}
        self._pruned_below = 0
        scheduler.register(coordinator_id, self.on_event)

    # ------------------------------------------------------------------ events

    def on_event(self, event: Event) -> None:
        if event.tag == EventTag.PLACEMENT_DECISION:
            notice: PlacementDecisionNotice = event.payload
            self.open_cycle(notice.cycle_number, notice.nodes, notice.targets)
        elif event.tag == EventTag.INSTALL_NOTIFICATION:
            note: InstallNotification = event.payload
            self.acknowledge(note.node_id, note.cycle_number)
        elif event.tag == EventTag.EXECUTION_TIMEOUT:
            self.handle_timeout(int(event.payload))
        else:
            logger.warning(f"Coordinator ignoring unexpected event {event.tag}")

    # ------------------------------------------------------------------ barrier

    def open_cycle(
        self,
        cycle_number: int,
        nodes: Iterable[int],
        targets: Mapping[PlacementRequest, int],
    ) -> Cycle:
        if cycle_number in self._cycles or cycle_number < self._pruned_below:
            raise ProtocolIntegrityError(f"Cycle {cycle_number} was already opened")
        cycle = Cycle(
            number=cycle_number,
            checklist={node_id: False for node_id in nodes},
            to_send=dict(targets),
            opened_at=self.scheduler.now(),
        )
        self._cycles[cycle_number] = cycle
        self._prune(cycle_number)
        logger.info(
            f"Cycle {cycle_number} opened: {len(cycle.checklist)} nodes to acknowledge, "
            f"{len(cycle.to_send)} requests to start"
        )
        self.scheduler.schedule(
            self.coordinator_id,
            self.config.execution_timeout,
            EventTag.EXECUTION_TIMEOUT,
            cycle_number,
            source=self.coordinator_id,
        )
        if not cycle.checklist:
            self._complete(cycle)
        return cycle

    def acknowledge(self, node_id: int, cycle_number: int) -> None:
        if cycle_number < self._pruned_below and cycle_number not in self._cycles:
            logger.warning(f"Acknowledgment from node {node_id} for retired cycle {cycle_number}")
            return
        cycle = self._cycles.get(cycle_number)
        if cycle is None:
            raise ProtocolIntegrityError(f"Acknowledgment for unknown cycle {cycle_number} from node {node_id}")
        if node_id not in cycle.checklist:
            raise ProtocolIntegrityError(f"Node {node_id} is not on the checklist of cycle {cycle_number}")
        if cycle.closed:
            logger.warning(
                f"Acknowledgment from node {node_id} after cycle {cycle_number} closed ({cycle.state.value})"
            )
            cycle.checklist[node_id] = True
            return
        cycle.checklist[node_id] = True
        cycle.state = CycleState.WAITING
        if cycle.all_acknowledged():
            self._complete(cycle)

    def handle_timeout(self, cycle_number: int) -> None:
        cycle = self._cycles.get(cycle_number)
        if cycle is None or cycle.closed:
            return
        missing = [node_id for node_id, done in cycle.checklist.items() if not done]
        cycle.state = CycleState.TIMED_OUT
        cycle.closed_at = self.scheduler.now()
        detail = f"Not all nodes acknowledged installation in cycle {cycle_number}, missing {missing}"
        logger.error(f"Execution timeout: {detail}")
        if self.monitor is not None:
            self.monitor.record_error(ErrorKind.TIMEOUT, detail, self.scheduler.now())
            self.monitor.record_cycle(cycle_number, cycle.state.value)

    def _complete(self, cycle: Cycle) -> None:
        cycle.state = CycleState.COMPLETE
        cycle.closed_at = self.scheduler.now()
        logger.info(f"Cycle {cycle.number} complete, starting {len(cycle.to_send)} requests")
        if self.monitor is not None:
            self.monitor.record_cycle(cycle.number, cycle.state.value)
        for request, target in cycle.to_send.items():
            cycle.triggered.append(request)
            if self.on_execute is not None:
                self.on_execute(request, target, cycle.number)

    def _prune(self, newest: int) -> None:
        horizon = newest - self.retain_cycles
        for number in [n for n, c in self._cycles.items() if n < horizon and c.closed]:
            del self._cycles[number]
        self._pruned_below = max(self._pruned_below, horizon)

    # ------------------------------------------------------------------ queries

    def cycle(self, cycle_number: int) -> Cycle:
        try:
            return self._cycles[cycle_number]
        except KeyError:
            raise ProtocolIntegrityError(f"Unknown cycle {cycle_number}") from None

    def state(self, cycle_number: int) -> CycleState:
        return self.cycle(cycle_number).state

    def cycles(self) -> List[Cycle]:
        return [self._cycles[n] for n in sorted(self._cycles)]
