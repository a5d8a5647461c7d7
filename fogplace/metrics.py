"""Placement metrics collected during a simulation run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from fogplace.errors import ErrorKind
from fogplace.ledger import DeviceState
from fogplace.request import FailureReason, PlacementRequest, RequestKey
from fogplace.topology import Topology

logger = logging.getLogger(__name__)


def utilisation_spread(ledgers: Sequence[DeviceState]) -> float:
	"""
	Balance metric over candidate nodes.

	Args:
		ledgers: Current device states

	Returns:
		sqrt(0.5 * std(cpu_util)^2 + 0.5 * std(ram_util)^2), population std
	"""
	if not ledgers:
		return 0.0
	cpu = np.array([ledger.cpu_util for ledger in ledgers])
	ram = np.array([ledger.ram_util for ledger in ledgers])
	return float(np.sqrt(0.5 * np.std(cpu) ** 2 + 0.5 * np.std(ram) ** 2))


def decision_latency(request: PlacementRequest, topology: Topology) -> float:
	"""Request latency plus hops between consecutive hosts, final return hop excluded."""
	hosts = list(request.placed.values())
	if len(hosts) <= 1:
		return 0.0
	latency = request.request_latency
	for src, dst in zip(hosts[:-2], hosts[1:-1]):
		latency += topology.latency(src, dst)
	return latency


@dataclass
class RequestRecord:
	key: RequestKey
	user_type: str
	time: float
	latency: float = 0.0
	utilisation: float = 0.0
	failure: Optional[FailureReason] = None


@dataclass
class ErrorRecord:
	kind: ErrorKind
	detail: str
	time: float


class PlacementMonitor:
	"""Collects per-request and per-cycle outcomes for reporting."""

	def __init__(self) -> None:
		self.totals: Dict[float, int] = {}
		self.requests: List[RequestRecord] = []
		self.errors: List[ErrorRecord] = []
		self.cycles: Dict[int, str] = {}

	def record_total(self, count: int, time: float) -> None:
		self.totals[time] = self.totals.get(time, 0) + count

	def record_success(self, request: PlacementRequest, time: float, latency: float, utilisation: float) -> None:
		self.requests.append(
			RequestRecord(
				key=request.key,
				user_type=request.user_type,
				time=time,
				latency=latency,
				utilisation=utilisation,
			)
		)

	def record_failure(self, request: PlacementRequest, reason: FailureReason, time: float) -> None:
		logger.error(
			f"Placement request failed ({reason.value}): sensor {request.sensor_id}, "
			f"request {request.request_index}"
		)
		self.requests.append(
			RequestRecord(key=request.key, user_type=request.user_type, time=time, failure=reason)
		)

	def record_error(self, kind: ErrorKind, detail: str, time: float) -> None:
		self.errors.append(ErrorRecord(kind=kind, detail=detail, time=time))

	def record_cycle(self, cycle_number: int, state: str) -> None:
		self.cycles[cycle_number] = state

	def summary(self) -> Dict[str, Any]:
		succeeded = [r for r in self.requests if r.failure is None]
		failed = [r for r in self.requests if r.failure is not None]
		latencies = [r.latency for r in succeeded]
		return {
			"total_requests": sum(self.totals.values()),
			"succeeded": len(succeeded),
			"failed": len(failed),
			"mean_latency": float(np.mean(latencies)) if latencies else 0.0,
			"mean_utilisation_spread": float(np.mean([r.utilisation for r in succeeded])) if succeeded else 0.0,
			"timeouts": sum(1 for e in self.errors if e.kind == ErrorKind.TIMEOUT),
			"resource_exhaustion": sum(1 for e in self.errors if e.kind == ErrorKind.RESOURCE_EXHAUSTION),
			"cycles": dict(self.cycles),
		}
