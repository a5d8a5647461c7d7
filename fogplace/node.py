from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from fogplace.application import Application, Direction
from fogplace.discovery import ServiceDiscoveryIndex
from fogplace.errors import ProtocolIntegrityError, RoutingError
from fogplace.ledger import CPU, RAM, STORAGE, ResourceAvailability
from fogplace.protocol import (
    DataMessage,
    DeploymentRequest,
    DiscoveryAction,
    DiscoveryUpdate,
    InstallNotification,
    MessageKind,
    ProtocolMessage,
    ResourceDelta,
)
from fogplace.request import PlacementRequest
from fogplace.simulator import Event, EventScheduler, EventTag
from fogplace.topology import FogNode, Topology

if TYPE_CHECKING:
    from fogplace.orchestrator import PlacementOrchestrator

logger = logging.getLogger(__name__)


class FogNodeAgent:
    """Message router and protocol dispatcher for one simulated node.

    Messages not addressed to this node go to the next hop from the
    precomputed routing table. Messages addressed here are dispatched by
    kind.
    """

    def __init__(
        self,
        node: FogNode,
        topology: Topology,
        scheduler: EventScheduler,
        applications: Mapping[str, Application],
        orchestrator_node_id: int,
        coordinator_id: int,
        module_deployment_time: float = 0.0,
    ) -> None:
        self.node = node
        self.node_id = node.node_id
        self.topology = topology
        self.scheduler = scheduler
        self.applications = applications
        self.orchestrator_node_id = orchestrator_node_id
        self.coordinator_id = coordinator_id
        self.module_deployment_time = module_deployment_time

        self.routing_table: Dict[int, int] = topology.routing_table(node.node_id)
        self.discovery = ServiceDiscoveryIndex(node.node_id)
        self.resources = ResourceAvailability(
            {node.node_id: {CPU: node.cpu, RAM: node.ram, STORAGE: node.storage}}
        )
        self.orchestrator: Optional["PlacementOrchestrator"] = None
        self.installed: Dict[str, Dict[str, int]] = {}
        self.received: List[DataMessage] = []
        self.completed: List[DataMessage] = []
        scheduler.register(node.node_id, self.on_event)

    # ------------------------------------------------------------------ events

    def on_event(self, event: Event) -> None:
        if event.tag == EventTag.MESSAGE_ARRIVAL:
            self.receive(event.payload)
        elif event.tag == EventTag.PROCESS_PLACEMENT:
            if self.orchestrator is None:
                raise ProtocolIntegrityError(f"Node {self.node_id} has no orchestrator to run placement")
            self.orchestrator.process_requests()
        elif event.tag == EventTag.MODULE_UNINSTALL:
            app_id, module = event.payload
            self.uninstall_module(app_id, module)
        else:
            logger.warning(f"Node {self.node_id} ignoring unexpected event {event.tag}")

    # ------------------------------------------------------------------ routing

    def next_hop(self, destination_id: int) -> int:
        try:
            return self.routing_table[destination_id]
        except KeyError:
            raise RoutingError(f"Node {self.node_id} has no route to {destination_id}") from None

    def send(self, message: ProtocolMessage, delay: float = 0.0) -> None:
        if not message.message_id:
            message.message_id = self.scheduler.next_message_id()
        if message.destination_id == self.node_id:
            self.scheduler.schedule(self.node_id, delay, EventTag.MESSAGE_ARRIVAL, message, source=self.node_id)
            return
        hop = self.next_hop(message.destination_id)
        if hop == self.node.parent_id:
            direction = "up"
        elif self.topology.parent_of(hop) == self.node_id:
            direction = "down"
        else:
            direction = "peer"
        message.hops += 1
        logger.debug(
            f"Node {self.node_id} sending {message.kind.name} #{message.message_id} {direction} to {hop} "
            f"(destination {message.destination_id})"
        )
        self.scheduler.schedule(
            hop,
            delay + self.topology.link_latency(self.node_id, hop),
            EventTag.MESSAGE_ARRIVAL,
            message,
            source=self.node_id,
        )

    def receive(self, message: ProtocolMessage) -> None:
        if message.destination_id != self.node_id:
            self.send(message)
            return
        self.dispatch(message)

    # ------------------------------------------------------------------ dispatch

    def dispatch(self, message: ProtocolMessage) -> None:
        kind = message.kind
        payload = message.payload
        if kind == MessageKind.PLACEMENT_REQUEST:
            if self.orchestrator is None:
                raise ProtocolIntegrityError(
                    f"Placement request reached node {self.node_id}, which does not run placement"
                )
            self.orchestrator.receive(payload)
        elif kind == MessageKind.SERVICE_DISCOVERY_UPDATE:
            self._update_discovery(payload)
        elif kind == MessageKind.RESOURCE_DELTA:
            self.resources.apply_delta(payload.node_id, payload.deltas)
        elif kind == MessageKind.DEPLOYMENT_REQUEST:
            self.deploy(payload)
        elif kind == MessageKind.INSTALL_NOTIFICATION:
            if self.node_id != self.orchestrator_node_id:
                raise ProtocolIntegrityError(
                    f"Install notification for cycle {payload.cycle_number} delivered to node {self.node_id}"
                )
            self.scheduler.schedule(
                self.coordinator_id, 0.0, EventTag.INSTALL_NOTIFICATION, payload, source=self.node_id
            )
        elif kind == MessageKind.DATA_FORWARD:
            self.handle_data(payload)

    def _update_discovery(self, update: DiscoveryUpdate) -> None:
        entry = update.entry
        if update.action == DiscoveryAction.ADD:
            self.discovery.add(entry.microservice, entry.node_id, entry.sensor_id, entry.request_index)
        else:
            self.discovery.remove(entry.microservice, entry.node_id, entry.sensor_id, entry.request_index)

    # ------------------------------------------------------------------ lifecycle

    def submit_request(self, request: PlacementRequest) -> None:
        self.send(
            ProtocolMessage(
                kind=MessageKind.PLACEMENT_REQUEST,
                source_id=self.node_id,
                destination_id=self.orchestrator_node_id,
                payload=request,
            )
        )

    def deploy(self, request: DeploymentRequest) -> None:
        for app_id, launches in request.launches.items():
            counts = self.installed.setdefault(app_id, {})
            for launch in launches:
                module = launch.module
                counts[module.name] = counts.get(module.name, 0) + launch.instance_count
                # the orchestrator's snapshot was already charged when the cycle ran
                if self.orchestrator is None:
                    self.resources.consume(
                        self.node_id, module.cpu, module.ram, module.storage, launch.instance_count
                    )
                logger.debug(
                    f"Node {self.node_id} launched {launch.instance_count} x {module.name} ({app_id})"
                )
        notification = InstallNotification(node_id=self.node_id, cycle_number=request.cycle_number)
        if self.node_id == self.orchestrator_node_id:
            self.scheduler.schedule(
                self.coordinator_id,
                self.module_deployment_time,
                EventTag.INSTALL_NOTIFICATION,
                notification,
                source=self.node_id,
            )
            return
        self.send(
            ProtocolMessage(
                kind=MessageKind.INSTALL_NOTIFICATION,
                source_id=self.node_id,
                destination_id=self.orchestrator_node_id,
                payload=notification,
            ),
            delay=self.module_deployment_time,
        )

    def uninstall_module(self, app_id: str, module_name: str) -> None:
        counts = self.installed.get(app_id, {})
        if counts.get(module_name, 0) <= 0:
            raise ProtocolIntegrityError(f"Node {self.node_id} has no running {module_name} ({app_id})")
        counts[module_name] -= 1
        module = self.applications[app_id].module(module_name)
        deltas = {CPU: module.cpu, RAM: module.ram, STORAGE: module.storage}
        self.resources.apply_delta(self.node_id, deltas)
        if self.node_id == self.orchestrator_node_id:
            return
        self.send(
            ProtocolMessage(
                kind=MessageKind.RESOURCE_DELTA,
                source_id=self.node_id,
                destination_id=self.orchestrator_node_id,
                payload=ResourceDelta(node_id=self.node_id, deltas=deltas),
            )
        )

    # ------------------------------------------------------------------ data plane

    def handle_data(self, message: DataMessage) -> None:
        if self.installed.get(message.app_id, {}).get(message.dest_module, 0) <= 0:
            raise ProtocolIntegrityError(
                f"Data for {message.dest_module} arrived at node {self.node_id}, which does not run it"
            )
        message.traversed.append((self.node_id, message.dest_module))
        self.received.append(message)

        app = self.applications[message.app_id]
        downstream = [
            edge
            for edge in app.edges
            if edge.source == message.dest_module and edge.direction == Direction.UP
        ]
        if not downstream:
            self.completed.append(message)
            return
        for edge in downstream:
            target = self.discovery.require(edge.destination, message.sensor_id, message.request_index)
            self.send(
                ProtocolMessage(
                    kind=MessageKind.DATA_FORWARD,
                    source_id=self.node_id,
                    destination_id=target,
                    payload=DataMessage(
                        app_id=message.app_id,
                        sensor_id=message.sensor_id,
                        request_index=message.request_index,
                        source_module=message.dest_module,
                        dest_module=edge.destination,
                        tuple_type=edge.tuple_type or "",
                        source_node=self.node_id,
                        traversed=list(message.traversed),
                    ),
                )
            )
