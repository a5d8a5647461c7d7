from __future__ import annotations

import logging
from typing import List, Mapping, Optional, Tuple

from fogplace.application import Application
from fogplace.config import PlacementConfig, ProcessingMode
from fogplace.coordinator import DeploymentCoordinator, PlacementDecisionNotice
from fogplace.decision import PlacementDecision
from fogplace.ledger import ResourceAvailability
from fogplace.metrics import PlacementMonitor
from fogplace.node import FogNodeAgent
from fogplace.placement.base import PlacementHeuristic
from fogplace.protocol import (
	DeploymentRequest,
	DiscoveryAction,
	DiscoveryUpdate,
	MessageKind,
	ProtocolMessage,
)
from fogplace.request import PlacementRequest
from fogplace.simulator import EventTag

logger = logging.getLogger(__name__)


class PlacementOrchestrator:
	"""
	Runs placement cycles on the orchestrating node and pushes the results
	out to the fog.

	Args:
		node_agent: Agent of the node hosting the orchestrator; its resource
			view becomes the authoritative snapshot
		heuristic: Placement algorithm run on every cycle
		applications: Application graphs by id
		resources: Initial resource snapshot for every node
		coordinator: Barrier that triggers execution once installs are acked
		config: Engine configuration (processing mode, interval)
		monitor: Optional metrics sink
	"""

	def __init__(
		self,
		node_agent: FogNodeAgent,
		heuristic: PlacementHeuristic,
		applications: Mapping[str, Application],
		resources: ResourceAvailability,
		coordinator: DeploymentCoordinator,
		config: Optional[PlacementConfig] = None,
		monitor: Optional[PlacementMonitor] = None,
	) -> None:
		self.agent = node_agent
		self.heuristic = heuristic
		self.applications = applications
		self.resources = resources
		self.coordinator = coordinator
		self.config = config or PlacementConfig()
		self.monitor = monitor
		self.queue: List[PlacementRequest] = []
		self.cycle_number = 1
		self.decisions: List[Tuple[int, PlacementDecision]] = []
		self.failed: List[PlacementRequest] = []
		# periodic cycles are not rescheduled past this time
		self.stop_time: Optional[float] = None

		node_agent.orchestrator = self
		node_agent.resources = resources

	@property
	def scheduler(self):
		return self.agent.scheduler

	def receive(self, request: PlacementRequest) -> None:
		if request.application_id not in self.applications:
			logger.error(f"Dropping request for unknown application '{request.application_id}'")
			return
		self.queue.append(request)
		logger.debug(f"Queued request (sensor {request.sensor_id}, index {request.request_index})")
		if self.config.processing_mode == ProcessingMode.SEQUENTIAL:
			self._run_cycle()

	def schedule_first_cycle(self) -> None:
		if self.config.processing_mode != ProcessingMode.PERIODIC:
			return
		self.scheduler.schedule(
			self.agent.node_id,
			self.config.placement_interval,
			EventTag.PROCESS_PLACEMENT,
			source=self.agent.node_id,
		)

	def process_requests(self) -> Optional[PlacementDecision]:
		decision = self._run_cycle()
		if self.config.processing_mode == ProcessingMode.PERIODIC:
			next_time = self.scheduler.now() + self.config.placement_interval
			if self.stop_time is None or next_time <= self.stop_time:
				self.scheduler.schedule(
					self.agent.node_id,
					self.config.placement_interval,
					EventTag.PROCESS_PLACEMENT,
					source=self.agent.node_id,
				)
		return decision

	# ------------------------------------------------------------------ cycle

	def _run_cycle(self) -> Optional[PlacementDecision]:
		if not self.queue:
			return None
		requests, self.queue = self.queue, []
		now = self.scheduler.now()
		cycle_number = self.cycle_number
		logger.info(f"Placement cycle {cycle_number}: {len(requests)} requests with {self.heuristic.name}")

		decision = self.heuristic.run(self.agent.topology, self.applications, self.resources, requests, now)
		self.decisions.append((cycle_number, decision))

		# coordinator must hold the checklist before any install notification
		self.scheduler.schedule(
			self.coordinator.coordinator_id,
			0.0,
			EventTag.PLACEMENT_DECISION,
			PlacementDecisionNotice(cycle_number, list(decision.per_device), dict(decision.targets)),
			source=self.agent.node_id,
		)
		for client_node, entries in decision.service_discovery.items():
			for entry in entries:
				self._send(
					MessageKind.SERVICE_DISCOVERY_UPDATE,
					client_node,
					DiscoveryUpdate(DiscoveryAction.ADD, entry),
				)
		for node_id, launches in decision.per_device.items():
			self._send(
				MessageKind.DEPLOYMENT_REQUEST,
				node_id,
				DeploymentRequest(cycle_number, launches),
			)

		failed = decision.failed()
		if failed:
			logger.warning(f"Cycle {cycle_number}: {len(failed)} requests could not be placed")
			self.failed.extend(failed)
		self.cycle_number += 1
		return decision

	def _send(self, kind: MessageKind, destination: int, payload) -> None:
		self.agent.send(
			ProtocolMessage(
				kind=kind,
				source_id=self.agent.node_id,
				destination_id=destination,
				payload=payload,
			)
		)
