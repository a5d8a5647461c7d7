from __future__ import annotations

import math
from typing import List

from fogplace.application import AppModule, Application
from fogplace.ledger import DeviceState
from fogplace.placement.base import PlacementHeuristic
from fogplace.request import PlacementOutcome, PlacementRequest


class BestFitHeuristic(PlacementHeuristic):
	"""Least utilised node first, re-sorted before every module."""

	name = "BestFit"

	def _order(self, module: AppModule, ledgers: List[DeviceState]) -> List[DeviceState]:
		return sorted(ledgers)

	def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
		return self._place_in_order(modules, app, request, self._order)

	def device_states(self) -> List[DeviceState]:
		return self._ledgers


class MaxFitHeuristic(BestFitHeuristic):
	name = "MaxFit"

	def _order(self, module: AppModule, ledgers: List[DeviceState]) -> List[DeviceState]:
		return sorted(ledgers, reverse=True)


class ClosestFitHeuristic(BestFitHeuristic):
	"""Nodes nearest to the request's entry node first."""

	name = "ClosestFit"

	def try_place_one_request(self, modules: List[str], app: Application, request: PlacementRequest) -> PlacementOutcome:
		entry = self.entry_nodes[request.key]

		def by_latency(module: AppModule, ledgers: List[DeviceState]) -> List[DeviceState]:
			return sorted(ledgers, key=lambda l: (self.topology.latency(entry, l.node_id), l.node_id))

		return self._place_in_order(modules, app, request, by_latency)


class RandomHeuristic(BestFitHeuristic):
	name = "Random"

	def _order(self, module: AppModule, ledgers: List[DeviceState]) -> List[DeviceState]:
		order = sorted(ledgers, key=lambda l: l.node_id)
		self.rng.shuffle(order)
		return order


def multi_opt_score(ledger: DeviceState) -> float:
	score = 0.0
	for util in (ledger.cpu_util, ledger.ram_util):
		if util >= 1.0:
			return math.inf
		score += 0.5 * (util / (1.0 - util))
	return score


class MultiOptHeuristic(BestFitHeuristic):
	"""Lowest combined CPU/RAM pressure score wins."""

	name = "MultiOpt"

	def _order(self, module: AppModule, ledgers: List[DeviceState]) -> List[DeviceState]:
		return sorted(ledgers, key=lambda l: (multi_opt_score(l), l.sort_key()))
