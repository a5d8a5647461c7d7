from __future__ import annotations

import logging
import random
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from fogplace.application import AppModule, Application
from fogplace.config import PlacementConfig
from fogplace.decision import InstanceCounts, PlacementDecision, assemble_decision
from fogplace.errors import ErrorKind
from fogplace.ledger import CPU, RAM, STORAGE, DeviceState, ResourceAvailability
from fogplace.metrics import PlacementMonitor, decision_latency, utilisation_spread
from fogplace.request import SUCCESS, FailureReason, PlacementOutcome, PlacementRequest, RequestKey
from fogplace.resolver import all_remaining
from fogplace.topology import FogNode, Topology

logger = logging.getLogger(__name__)

Ordering = Callable[[AppModule, List[DeviceState]], List[DeviceState]]


class PlacementHeuristic(ABC):
	"""
	Template for one placement decision cycle.

	``run`` resets derived state from the topology and resource snapshot,
	places pinned modules, asks the concrete heuristic to place every
	outstanding request, assembles the deployment plan and finally
	subtracts what was consumed from the authoritative snapshot.

	Args:
		orchestrator_id: Node running the placement; failed requests are
			handed back with this id as their re-forward target
		config: Engine configuration (seed and per-heuristic parameters)
		monitor: Optional metrics sink
	"""

	name = "base"

	def __init__(
		self,
		orchestrator_id: int,
		config: Optional[PlacementConfig] = None,
		monitor: Optional[PlacementMonitor] = None,
	) -> None:
		self.orchestrator_id = orchestrator_id
		self.config = config or PlacementConfig()
		self.monitor = monitor
		self.rng = random.Random(self.config.seed)
		self.now = 0.0

		self.topology: Optional[Topology] = None
		self.applications: Mapping[str, Application] = {}
		self.resources: Optional[ResourceAvailability] = None
		self.requests: List[PlacementRequest] = []
		self.entry_nodes: Dict[RequestKey, int] = {}
		self.mapped: Dict[RequestKey, Dict[str, int]] = {}
		self.instance_counts: InstanceCounts = {}
		self._pinned_load: Dict[int, List[float]] = {}
		# pinned (module, node) pairs per request, committed only on success
		self._pinned: Dict[RequestKey, List[Tuple[str, int]]] = {}
		self._utilisation: Dict[RequestKey, float] = {}
		self._ledgers: List[DeviceState] = []

	# ------------------------------------------------------------------ template

	def run(
		self,
		topology: Topology,
		applications: Mapping[str, Application],
		resources: ResourceAvailability,
		requests: Sequence[PlacementRequest],
		now: float = 0.0,
	) -> PlacementDecision:
		self.now = now
		self.reset(topology, applications, resources, requests)
		outcomes = self.map_modules()
		decision = self.generate_decision(outcomes)
		self.update_resources()
		self.post_processing()
		return decision

	def reset(
		self,
		topology: Topology,
		applications: Mapping[str, Application],
		resources: ResourceAvailability,
		requests: Sequence[PlacementRequest],
	) -> None:
		self.topology = topology
		self.applications = applications
		self.resources = resources
		self.requests = sorted(requests, key=lambda pr: pr.key)
		self.rng = random.Random(self.config.seed)
		self.mapped = {}
		self.instance_counts = {}
		self._pinned_load = {}
		self._pinned = {}
		self._utilisation = {}
		self.entry_nodes = {}
		for pr in self.requests:
			self.entry_nodes[pr.key] = topology.entry_node(pr.requester_id)
			self.mapped[pr.key] = dict(pr.placed)
			self._place_pinned(pr)
		self._ledgers = self._build_ledgers()

	def map_modules(self) -> Dict[PlacementRequest, PlacementOutcome]:
		outcomes: Dict[PlacementRequest, PlacementOutcome] = {}
		for pr in self.requests:
			app = self.applications[pr.application_id]
			modules = all_remaining(app, self.mapped[pr.key].keys())
			if not modules:
				logger.warning(
					f"Nothing left to place for sensor {pr.sensor_id}, request {pr.request_index}"
				)
				self._commit_pinned(pr, app)
				outcomes[pr] = SUCCESS
				continue
			outcome = self.try_place_one_request(modules, app, pr)
			if outcome.ok:
				self._commit_pinned(pr, app)
				self._utilisation[pr.key] = utilisation_spread(self.device_states())
			else:
				self._release_pinned(pr, app)
			outcomes[pr] = outcome
		return outcomes

	def generate_decision(self, outcomes: Dict[PlacementRequest, PlacementOutcome]) -> PlacementDecision:
		decision = assemble_decision(
			self.requests, self.mapped, outcomes, self.instance_counts, self.applications
		)
		if self.monitor is not None:
			self.monitor.record_total(len(self.requests), self.now)
			for pr, outcome in outcomes.items():
				if outcome.ok:
					self.monitor.record_success(
						pr,
						self.now,
						decision_latency(pr, self.topology),
						self._utilisation.get(pr.key, 0.0),
					)
				else:
					self.monitor.record_failure(pr, outcome.reason or FailureReason.PLACEMENT_FAILED, self.now)
		else:
			for pr in decision.failed():
				logger.error(f"Placement failed: sensor {pr.sensor_id}, request {pr.request_index}")
		return decision

	def update_resources(self) -> None:
		for node_id, by_app in self.instance_counts.items():
			for app_id, counts in by_app.items():
				app = self.applications[app_id]
				for name, count in counts.items():
					module = app.module(name)
					self.resources.consume(node_id, module.cpu, module.ram, module.storage, count)

	def post_processing(self) -> None:
		pass

	@abstractmethod
	def try_place_one_request(
		self, modules: List[str], app: Application, request: PlacementRequest
	) -> PlacementOutcome:
		raise NotImplementedError

	@abstractmethod
	def device_states(self) -> List[DeviceState]:
		raise NotImplementedError

	# ------------------------------------------------------------------ helpers

	def _build_ledgers(self) -> List[DeviceState]:
		ledgers: List[DeviceState] = []
		for node in self.topology.placement_candidates():
			ledger = self.resources.ledger_for(node.node_id, node.cpu, node.ram, node.storage)
			load = self._pinned_load.get(node.node_id)
			if load:
				ledger.allocate(*load)
			ledgers.append(ledger)
		return ledgers

	def _place_pinned(self, pr: PlacementRequest) -> None:
		"""Reserve pinned hosts for ``pr``; counted as instances only once the request succeeds."""
		app = self.applications[pr.application_id]
		pinned = self._pinned.setdefault(pr.key, [])
		for name, hosts in app.pinned.items():
			if name in self.mapped[pr.key]:
				continue
			module = app.module(name)
			for host in hosts:
				node = self.topology.by_name(host)
				if self._pinned_fits(module, node):
					load = self._pinned_load.setdefault(node.node_id, [0.0, 0.0, 0.0])
					load[0] += module.cpu
					load[1] += module.ram
					load[2] += module.storage
					self.mapped[pr.key][name] = node.node_id
					pinned.append((name, node.node_id))
				else:
					logger.error(f"Pinned module {name} does not fit on {host}, left unplaced")

	def _commit_pinned(self, pr: PlacementRequest, app: Application) -> None:
		pinned = self._pinned.pop(pr.key, [])
		if pinned:
			names, node_ids = zip(*pinned)
			self._commit(pr, app, names, node_ids)

	def _release_pinned(self, pr: PlacementRequest, app: Application) -> None:
		ledgers = self._working_ledgers()
		for name, node_id in self._pinned.pop(pr.key, []):
			module = app.module(name)
			load = self._pinned_load[node_id]
			load[0] -= module.cpu
			load[1] -= module.ram
			load[2] -= module.storage
			self.mapped[pr.key].pop(name, None)
			if node_id in ledgers:
				ledgers[node_id].deallocate(module.cpu, module.ram, module.storage)
			logger.info(
				f"Released pinned {name} on node {node_id} (sensor {pr.sensor_id}, request {pr.request_index})"
			)

	def _working_ledgers(self) -> Dict[int, DeviceState]:
		return {ledger.node_id: ledger for ledger in self._ledgers}

	def _pinned_fits(self, module: AppModule, node: FogNode) -> bool:
		load = self._pinned_load.get(node.node_id, [0.0, 0.0, 0.0])
		free = [self.resources.get(node.node_id, r) for r in (CPU, RAM, STORAGE)]
		if any(value is None for value in free):
			free = [node.cpu, node.ram, node.storage]
		return (
			module.cpu + load[0] <= free[0]
			and module.ram + load[1] <= free[1]
			and module.storage + load[2] <= free[2]
		)

	def _commit(
		self, request: PlacementRequest, app: Application, modules: Sequence[str], node_ids: Sequence[int]
	) -> None:
		mapping = self.mapped.setdefault(request.key, {})
		for name, node_id in zip(modules, node_ids):
			mapping[name] = node_id
			counts = self.instance_counts.setdefault(node_id, {}).setdefault(app.app_id, {})
			counts[name] = counts.get(name, 0) + 1
			logger.debug(
				f"Placed {name} on node {node_id} (sensor {request.sensor_id}, request {request.request_index})"
			)

	@staticmethod
	def _rollback(
		ledgers: Mapping[int, DeviceState], app: Application, modules: Sequence[str], node_ids: Sequence[Optional[int]]
	) -> None:
		for name, node_id in zip(modules, node_ids):
			if node_id is None:
				continue
			module = app.module(name)
			ledgers[node_id].deallocate(module.cpu, module.ram, module.storage)

	def _check_exhaustion(self, module: AppModule) -> None:
		for ledger in self._ledgers:
			if ledger.total_cpu >= module.cpu and ledger.total_ram >= module.ram and ledger.total_storage >= module.storage:
				return
		detail = f"No candidate node can ever host {module.name} (cpu={module.cpu}, ram={module.ram})"
		logger.error(f"Resource exhaustion: {detail}")
		if self.monitor is not None:
			self.monitor.record_error(ErrorKind.RESOURCE_EXHAUSTION, detail, self.now)

	def _failure(self) -> PlacementOutcome:
		return PlacementOutcome.failed(self.orchestrator_id)

	def _place_in_order(
		self, modules: List[str], app: Application, request: PlacementRequest, ordering: Ordering
	) -> PlacementOutcome:
		"""First-fit over ``ordering(module, ledgers)``, all or nothing."""
		by_id = {ledger.node_id: ledger for ledger in self._ledgers}
		assigned: List[Optional[int]] = [None] * len(modules)
		for i, name in enumerate(modules):
			module = app.module(name)
			self._check_exhaustion(module)
			for ledger in ordering(module, self._ledgers):
				if ledger.can_fit(module.cpu, module.ram, module.storage):
					ledger.allocate(module.cpu, module.ram, module.storage)
					assigned[i] = ledger.node_id
					break
			if assigned[i] is None:
				logger.info(
					f"{self.name}: could not place {name} for sensor {request.sensor_id}, "
					f"request {request.request_index}"
				)
				self._rollback(by_id, app, modules, assigned)
				return self._failure()
		self._commit(request, app, modules, assigned)
		return SUCCESS
