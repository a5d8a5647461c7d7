"""Turns per-request placements into a deployment plan.

The plan groups new module instances by host and application, lists the
service discovery entries each client host needs, and names the node that
starts execution for every successful request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping

from fogplace.application import AppModule, Application
from fogplace.discovery import ServiceDiscoveryEntry
from fogplace.errors import ProtocolIntegrityError
from fogplace.request import PlacementOutcome, PlacementRequest, RequestKey

logger = logging.getLogger(__name__)

# node -> app id -> module name -> instances placed this cycle
InstanceCounts = Dict[int, Dict[str, Dict[str, int]]]


@dataclass(frozen=True)
class ModuleLaunchConfig:
    module: AppModule
    instance_count: int


@dataclass
class PlacementDecision:
    per_device: Dict[int, Dict[str, List[ModuleLaunchConfig]]] = field(default_factory=dict)
    service_discovery: Dict[int, List[ServiceDiscoveryEntry]] = field(default_factory=dict)
    outcomes: Dict[PlacementRequest, PlacementOutcome] = field(default_factory=dict)
    targets: Dict[PlacementRequest, int] = field(default_factory=dict)
    placements: Dict[RequestKey, Dict[str, int]] = field(default_factory=dict)

    def successful(self) -> List[PlacementRequest]:
        return [pr for pr, outcome in self.outcomes.items() if outcome.ok]

    def failed(self) -> List[PlacementRequest]:
        return [pr for pr, outcome in self.outcomes.items() if not outcome.ok]


def clean_requests(
    requests: List[PlacementRequest],
    mapped: Mapping[RequestKey, Dict[str, int]],
    outcomes: Mapping[PlacementRequest, PlacementOutcome],
    applications: Mapping[str, Application],
) -> Dict[RequestKey, Dict[str, int]]:
    """Merge this cycle's placements into each successful request.

    Returns, per request key, only the modules placed in this cycle. The
    client module (first service) is moved to the end of ``placed`` so the
    recorded order follows the request's path back to the user.
    """
    placements: Dict[RequestKey, Dict[str, int]] = {}
    for pr in requests:
        outcome = outcomes.get(pr)
        if outcome is None or not outcome.ok:
            continue
        if pr.key not in mapped:
            continue
        new: Dict[str, int] = {}
        for module, node_id in mapped[pr.key].items():
            if module in pr.placed:
                continue
            pr.placed[module] = node_id
            new[module] = node_id
        first = applications[pr.application_id].first_service
        if pr.placed and next(iter(pr.placed)) == first:
            pr.placed[first] = pr.placed.pop(first)
        placements[pr.key] = new
    return placements


def client_service_nodes(
    app: Application,
    module: str,
    placed: Mapping[str, int],
    new: Mapping[str, int],
) -> List[int]:
    nodes: List[int] = []
    for client in app.client_services(module):
        if client in placed:
            nodes.append(placed[client])
        elif client in new:
            nodes.append(new[client])
    return nodes


def build_per_device(
    instance_counts: InstanceCounts,
    applications: Mapping[str, Application],
) -> Dict[int, Dict[str, List[ModuleLaunchConfig]]]:
    per_device: Dict[int, Dict[str, List[ModuleLaunchConfig]]] = {}
    for node_id, by_app in instance_counts.items():
        for app_id, counts in by_app.items():
            app = applications[app_id]
            for module, count in counts.items():
                if count <= 0:
                    continue
                per_device.setdefault(node_id, {}).setdefault(app_id, []).append(
                    ModuleLaunchConfig(app.module(module), count)
                )
    return per_device


def determine_targets(
    requests: List[PlacementRequest],
    outcomes: Mapping[PlacementRequest, PlacementOutcome],
    applications: Mapping[str, Application],
) -> Dict[PlacementRequest, int]:
    targets: Dict[PlacementRequest, int] = {}
    for pr in requests:
        outcome = outcomes.get(pr)
        if outcome is not None and not outcome.ok:
            continue
        app = applications[pr.application_id]
        for second in app.second_services or []:
            if second in pr.placed:
                targets[pr] = pr.placed[second]
                break
        else:
            raise ProtocolIntegrityError(
                f"No host found for the second microservice of app '{app.app_id}' "
                f"(sensor {pr.sensor_id}, request {pr.request_index})"
            )
    return targets


def assemble_decision(
    requests: List[PlacementRequest],
    mapped: Mapping[RequestKey, Dict[str, int]],
    outcomes: Dict[PlacementRequest, PlacementOutcome],
    instance_counts: InstanceCounts,
    applications: Mapping[str, Application],
) -> PlacementDecision:
    placements = clean_requests(requests, mapped, outcomes, applications)
    by_key = {pr.key: pr for pr in requests}

    service_discovery: Dict[int, List[ServiceDiscoveryEntry]] = {}
    for key, new in placements.items():
        pr = by_key.get(key)
        if pr is None:
            logger.error(f"No placement request for sensor {key.sensor_id}, request {key.request_index}")
            continue
        if not outcomes[pr].ok:
            raise ProtocolIntegrityError(
                f"Failed request (sensor {key.sensor_id}, request {key.request_index}) has placements"
            )
        app = applications[pr.application_id]
        for module, node_id in new.items():
            for client_node in client_service_nodes(app, module, pr.placed, new):
                service_discovery.setdefault(client_node, []).append(
                    ServiceDiscoveryEntry(module, node_id, pr.sensor_id, pr.request_index)
                )

    return PlacementDecision(
        per_device=build_per_device(instance_counts, applications),
        service_discovery=service_discovery,
        outcomes=dict(outcomes),
        targets=determine_targets(requests, outcomes, applications),
        placements=placements,
    )
