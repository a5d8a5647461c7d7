"""
Scenario files and the simulation that runs them.

A scenario bundles a fog topology, the applications it serves, the
placement requests clients submit (each with a submit time) and, optionally,
engine configuration sections. ``Simulation`` wires one scheduler, one
agent per node, the orchestrator on the cloud node and the deployment
coordinator, then runs the whole exchange in virtual time.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from fogplace.application import Application, application_from_dict
from fogplace.config import PlacementConfig, config_from_dict
from fogplace.coordinator import DeploymentCoordinator
from fogplace.errors import ConfigurationError
from fogplace.ledger import CPU, RAM, STORAGE, ResourceAvailability
from fogplace.metrics import PlacementMonitor
from fogplace.node import FogNodeAgent
from fogplace.orchestrator import PlacementOrchestrator
from fogplace.placement import create_heuristic
from fogplace.protocol import DataMessage, MessageKind, ProtocolMessage
from fogplace.request import FailureReason, PlacementRequest
from fogplace.simulator import EventScheduler, EventTag
from fogplace.topology import NodeRole, Topology, topology_from_dict

logger = logging.getLogger(__name__)

# scheduler id of the deployment coordinator; node ids are non-negative
COORDINATOR_ID = -1


@dataclass
class ScheduledRequest:
	time: float
	request: PlacementRequest


@dataclass
class ScheduledUninstall:
	time: float
	node_id: int
	app_id: str
	module: str


@dataclass
class Scenario:
	topology: Topology
	applications: Dict[str, Application]
	requests: List[ScheduledRequest] = field(default_factory=list)
	uninstalls: List[ScheduledUninstall] = field(default_factory=list)
	config: Optional[PlacementConfig] = None


def _node_ref(topology: Topology, value: Any) -> int:
	if isinstance(value, int):
		topology.node(value)
		return value
	return topology.by_name(str(value)).node_id


def scenario_from_dict(data: Dict[str, Any]) -> Scenario:
	if not isinstance(data, dict):
		raise ConfigurationError("Scenario must be a mapping")
	topology = topology_from_dict({"nodes": data.get("nodes", [])})
	applications: Dict[str, Application] = {}
	for raw in data.get("applications", []):
		app = application_from_dict(raw)
		if app.app_id in applications:
			raise ConfigurationError(f"Duplicate application id '{app.app_id}'")
		applications[app.app_id] = app

	requests: List[ScheduledRequest] = []
	for raw in data.get("requests", []):
		app_id = raw["app"]
		if app_id not in applications:
			raise ConfigurationError(f"Request references unknown application '{app_id}'")
		app = applications[app_id]
		requester = _node_ref(topology, raw["requester"])
		if "placed" in raw:
			placed = {name: _node_ref(topology, node) for name, node in (raw["placed"] or {}).items()}
		else:
			# the client module runs on the requesting device
			placed = {app.first_service: requester} if app.first_service else {}
		requests.append(
			ScheduledRequest(
				time=float(raw.get("time", 0.0)),
				request=PlacementRequest(
					application_id=app_id,
					sensor_id=int(raw["sensor"]),
					request_index=int(raw.get("index", 0)),
					requester_id=requester,
					placed=placed,
					user_type=str(raw.get("user_type", "generic")),
					request_latency=float(raw.get("latency", 0.0)),
				),
			)
		)

	uninstalls = [
		ScheduledUninstall(
			time=float(raw["time"]),
			node_id=_node_ref(topology, raw["node"]),
			app_id=raw["app"],
			module=raw["module"],
		)
		for raw in data.get("uninstalls", [])
	]

	config = None
	if any(section in data for section in ("placement", "annealing", "aco", "solver")):
		config = config_from_dict(data)
	logger.info(
		f"Loaded scenario: {len(topology.nodes())} nodes, {len(applications)} applications, "
		f"{len(requests)} requests"
	)
	return Scenario(topology, applications, requests, uninstalls, config)


def load_scenario(path: str) -> Scenario:
	if not os.path.exists(path):
		raise ConfigurationError(f"Scenario file {path} not found")
	with open(path, "r") as f:
		data = yaml.safe_load(f) or {}
	return scenario_from_dict(data)


@dataclass
class SimulationReport:
	heuristic: str
	decisions: List[Dict[str, Any]] = field(default_factory=list)
	outcomes: Dict[str, str] = field(default_factory=dict)
	cycles: Dict[int, str] = field(default_factory=dict)
	completed: List[Dict[str, Any]] = field(default_factory=list)
	summary: Dict[str, Any] = field(default_factory=dict)
	end_time: float = 0.0

	def to_dict(self) -> Dict[str, Any]:
		return {
			"heuristic": self.heuristic,
			"decisions": self.decisions,
			"outcomes": self.outcomes,
			"cycles": {str(k): v for k, v in self.cycles.items()},
			"completed": self.completed,
			"summary": {**self.summary, "cycles": {str(k): v for k, v in self.summary.get("cycles", {}).items()}},
			"end_time": self.end_time,
		}


def _request_label(request: PlacementRequest) -> str:
	return f"{request.sensor_id}:{request.request_index}"


class Simulation:
	"""One end-to-end placement run over a scenario."""

	def __init__(self, scenario: Scenario, config: Optional[PlacementConfig] = None) -> None:
		self.scenario = scenario
		self.config = config or scenario.config or PlacementConfig()
		self.topology = scenario.topology
		self.applications = scenario.applications
		self.scheduler = EventScheduler()
		self.monitor = PlacementMonitor()

		cloud_id = self.topology.cloud_id
		self.coordinator = DeploymentCoordinator(
			self.scheduler, COORDINATOR_ID, config=self.config, monitor=self.monitor
		)
		self.coordinator.on_execute = self._start_execution

		self.agents: Dict[int, FogNodeAgent] = {
			node.node_id: FogNodeAgent(
				node,
				self.topology,
				self.scheduler,
				self.applications,
				orchestrator_node_id=cloud_id,
				coordinator_id=COORDINATOR_ID,
				module_deployment_time=self.config.module_deployment_time,
			)
			for node in self.topology.nodes()
		}

		resources = ResourceAvailability()
		for node in self.topology.nodes():
			if node.role == NodeRole.USER:
				continue
			resources.initialize(node.node_id, {CPU: node.cpu, RAM: node.ram, STORAGE: node.storage})
		heuristic = create_heuristic(self.config.heuristic, cloud_id, config=self.config, monitor=self.monitor)
		self.orchestrator = PlacementOrchestrator(
			self.agents[cloud_id],
			heuristic,
			self.applications,
			resources,
			self.coordinator,
			config=self.config,
			monitor=self.monitor,
		)
		self.rejected: List[PlacementRequest] = []
		self._ran = False

	@property
	def cloud(self) -> FogNodeAgent:
		return self.agents[self.topology.cloud_id]

	# ------------------------------------------------------------------ execution

	def _start_execution(self, request: PlacementRequest, target: int, cycle_number: int) -> None:
		app = self.applications[request.application_id]
		dest_module = next(
			(name for name in app.second_services or [] if request.placed.get(name) == target),
			None,
		)
		if dest_module is None:
			logger.error(f"Target {target} hosts no second microservice of '{app.app_id}'")
			return
		edge = next((e for e in app.edges if e.source == app.first_service and e.destination == dest_module), None)
		logger.debug(f"Cycle {cycle_number}: starting sensor {request.sensor_id} at node {target}")
		self.cloud.send(
			ProtocolMessage(
				kind=MessageKind.DATA_FORWARD,
				source_id=self.cloud.node_id,
				destination_id=target,
				payload=DataMessage(
					app_id=app.app_id,
					sensor_id=request.sensor_id,
					request_index=request.request_index,
					source_module=app.first_service,
					dest_module=dest_module,
					tuple_type=(edge.tuple_type if edge is not None else None) or "",
					source_node=request.requester_id,
					traversed=[(request.requester_id, app.first_service)],
				),
			)
		)

	def _user_can_fit(self, request: PlacementRequest) -> bool:
		app = self.applications[request.application_id]
		client = app.module(app.first_service)
		node = self.topology.node(request.requester_id)
		return client.cpu <= node.cpu and client.ram <= node.ram and client.storage <= node.storage

	def _stop_time(self) -> float:
		cloud_id = self.topology.cloud_id
		last = 0.0
		for item in self.scenario.requests:
			last = max(last, item.time + self.topology.latency(item.request.requester_id, cloud_id))
		return last + self.config.placement_interval

	def run(self, until: Optional[float] = None) -> SimulationReport:
		if self._ran:
			raise ConfigurationError("A Simulation can only be run once; build a new one")
		self._ran = True
		for item in self.scenario.requests:
			if not self._user_can_fit(item.request):
				# never transmitted: the requester cannot run its own client module
				self.monitor.record_failure(item.request, FailureReason.USER_LACKED_RESOURCES, item.time)
				self.rejected.append(item.request)
				continue
			agent = self.agents[item.request.requester_id]
			self.scheduler.schedule(
				agent.node_id,
				item.time,
				EventTag.MESSAGE_ARRIVAL,
				ProtocolMessage(
					kind=MessageKind.PLACEMENT_REQUEST,
					source_id=agent.node_id,
					destination_id=self.topology.cloud_id,
					payload=item.request,
					message_id=self.scheduler.next_message_id(),
				),
				source=agent.node_id,
			)
		for item in self.scenario.uninstalls:
			self.scheduler.schedule(
				item.node_id, item.time, EventTag.MODULE_UNINSTALL, (item.app_id, item.module)
			)
		self.orchestrator.stop_time = self._stop_time()
		self.orchestrator.schedule_first_cycle()
		self.scheduler.run(until)
		return self.report()

	def report(self) -> SimulationReport:
		report = SimulationReport(heuristic=self.orchestrator.heuristic.name, end_time=self.scheduler.now())
		for cycle_number, decision in self.orchestrator.decisions:
			report.decisions.append(
				{
					"cycle": cycle_number,
					"placements": {
						f"{key.sensor_id}:{key.request_index}": dict(modules)
						for key, modules in decision.placements.items()
					},
					"targets": {_request_label(pr): node for pr, node in decision.targets.items()},
					"failed": [_request_label(pr) for pr in decision.failed()],
				}
			)
			for pr, outcome in decision.outcomes.items():
				report.outcomes[_request_label(pr)] = "success" if outcome.ok else outcome.reason.value
		for pr in self.rejected:
			report.outcomes[_request_label(pr)] = FailureReason.USER_LACKED_RESOURCES.value
		report.cycles = {cycle.number: cycle.state.value for cycle in self.coordinator.cycles()}
		for agent in self.agents.values():
			for message in agent.completed:
				report.completed.append(
					{
						"request": f"{message.sensor_id}:{message.request_index}",
						"path": [[node, module] for node, module in message.traversed],
					}
				)
		report.summary = self.monitor.summary()
		return report
