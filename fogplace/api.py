from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from fogplace.config import PlacementConfig, config_from_dict
from fogplace.errors import ConfigurationError, FogPlaceError
from fogplace.placement import HeuristicKind
from fogplace.scenario import Scenario, Simulation, scenario_from_dict

logger = logging.getLogger(__name__)


def create_app(scenario: Optional[Scenario] = None, config: Optional[PlacementConfig] = None) -> Flask:
	app = Flask(__name__)
	# Scenario used when a /simulate body does not carry its own
	app.config['fogplace_scenario'] = scenario
	app.config['fogplace_config'] = config or PlacementConfig()
	app.config['fogplace_last_report'] = None

	def select_config(body: Dict[str, Any], base: PlacementConfig) -> PlacementConfig:
		cfg = base
		if any(section in body for section in ("placement", "annealing", "aco", "solver")):
			cfg = config_from_dict(body)
		overrides: Dict[str, Any] = {}
		if body.get("heuristic") is not None:
			overrides["heuristic"] = HeuristicKind.parse(body["heuristic"]).name
		if body.get("seed") is not None:
			overrides["seed"] = int(body["seed"])
		return replace(cfg, **overrides) if overrides else cfg

	@app.get("/heuristics")
	def heuristics() -> Any:
		return jsonify({
			"heuristics": [{"id": kind.value, "name": kind.name} for kind in HeuristicKind],
			"default": app.config['fogplace_config'].heuristic,
		})

	@app.post("/simulate")
	def simulate() -> Any:
		body: Dict[str, Any] = request.get_json(force=True, silent=True) or {}
		try:
			if body.get("scenario") is not None:
				scenario = scenario_from_dict(body["scenario"])
			else:
				scenario = app.config['fogplace_scenario']
				if scenario is None:
					return jsonify({"error": "missing scenario"}), 400
				# requests are mutated while placing, keep the loaded scenario pristine
				scenario = copy.deepcopy(scenario)
			cfg = select_config(body, scenario.config or app.config['fogplace_config'])
		except (ConfigurationError, KeyError, TypeError, ValueError) as e:
			return jsonify({"error": f"invalid request: {e}"}), 400

		try:
			report = Simulation(scenario, cfg).run(body.get("until"))
		except FogPlaceError as e:
			logger.error(f"Simulation aborted ({e.kind.value}): {e}")
			return jsonify({"error": str(e), "kind": e.kind.value}), 500
		app.config['fogplace_last_report'] = report
		return jsonify(report.to_dict())

	@app.get("/snapshot")
	def snapshot() -> Any:
		report = app.config['fogplace_last_report']
		if report is None:
			return jsonify({"error": "no simulation has run yet"}), 404
		return jsonify(report.to_dict())

	return app
