"""Placement engine configuration (YAML file plus environment overrides)."""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import yaml

from fogplace.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProcessingMode(Enum):
	PERIODIC = "periodic"  # batch queued requests every placement_interval
	SEQUENTIAL = "sequential"  # place each request as soon as it arrives


@dataclass
class AnnealingParams:
	initial_temperature: float = 1000.0
	cooling_factor: float = 0.995
	min_temperature: float = 1.0


@dataclass
class AntColonyParams:
	tau0: float = 4.0
	ants: int = 200
	iterations: int = 10
	alpha: float = 0.002
	beta: float = 0.3
	rho: float = 0.05
	delta_tau: float = 0.4


@dataclass
class SolverParams:
	max_time_in_seconds: float = 10.0
	workers: int = 1


@dataclass
class PlacementConfig:
	"""
	Options recognised by the placement engine.

	Args:
		heuristic: One of the names accepted by ``create_heuristic``
		seed: Seed for the stochastic heuristics (Random, SA, ACO)
		processing_mode: Periodic batching or immediate placement
		placement_interval: Simulated seconds between periodic cycles
		execution_timeout: Horizon for install acknowledgments of one cycle
		module_deployment_time: Delay between a deployment request and the
			install notification it produces
	"""
	heuristic: str = "BEST_FIT"
	seed: int = 33
	processing_mode: ProcessingMode = ProcessingMode.PERIODIC
	placement_interval: float = 300.0
	execution_timeout: float = 30.0
	module_deployment_time: float = 0.0
	annealing: AnnealingParams = field(default_factory=AnnealingParams)
	aco: AntColonyParams = field(default_factory=AntColonyParams)
	solver: SolverParams = field(default_factory=SolverParams)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
	value = data.get(name) or {}
	if not isinstance(value, dict):
		raise ConfigurationError(f"Config section '{name}' must be a mapping")
	return value


def _build(cls, values: Dict[str, Any]):
	try:
		return cls(**values)
	except TypeError as e:
		raise ConfigurationError(f"Invalid {cls.__name__} options: {e}") from e


def _parse_mode(value: Any) -> ProcessingMode:
	if isinstance(value, ProcessingMode):
		return value
	try:
		return ProcessingMode(str(value).lower())
	except ValueError:
		raise ConfigurationError(f"Unknown processing mode: {value}") from None


def config_from_dict(data: Optional[Dict[str, Any]]) -> PlacementConfig:
	# local import: the heuristic registry imports this module
	from fogplace.placement import HeuristicKind

	data = data or {}
	placement = dict(_section(data, "placement"))
	if "processing_mode" in placement:
		placement["processing_mode"] = _parse_mode(placement["processing_mode"])
	config = _build(PlacementConfig, placement)
	config.annealing = _build(AnnealingParams, _section(data, "annealing"))
	config.aco = _build(AntColonyParams, _section(data, "aco"))
	config.solver = _build(SolverParams, _section(data, "solver"))
	config.heuristic = HeuristicKind.parse(config.heuristic).name
	if config.execution_timeout <= 0:
		raise ConfigurationError("execution_timeout must be positive")
	if config.placement_interval <= 0:
		raise ConfigurationError("placement_interval must be positive")
	if config.annealing.initial_temperature <= 0 or config.annealing.min_temperature <= 0:
		raise ConfigurationError("annealing temperatures must be positive")
	if not 0.0 < config.annealing.cooling_factor < 1.0:
		raise ConfigurationError("annealing.cooling_factor must be in (0, 1)")
	if config.aco.ants < 1 or config.aco.iterations < 1:
		raise ConfigurationError("aco.ants and aco.iterations must be at least 1")
	return config


def _apply_env(config: PlacementConfig) -> PlacementConfig:
	from fogplace.placement import HeuristicKind

	heuristic = os.getenv("FOGPLACE_HEURISTIC")
	if heuristic:
		config.heuristic = HeuristicKind.parse(heuristic).name
	seed = os.getenv("FOGPLACE_SEED")
	if seed:
		try:
			config.seed = int(seed)
		except ValueError:
			raise ConfigurationError(f"FOGPLACE_SEED must be an integer, got {seed!r}") from None
	mode = os.getenv("FOGPLACE_MODE")
	if mode:
		config.processing_mode = _parse_mode(mode)
	return config


def load_config(path: Optional[str] = None) -> PlacementConfig:
	"""Load configuration from YAML, falling back to defaults when absent."""
	data: Dict[str, Any] = {}
	if path and os.path.exists(path):
		with open(path, "r") as f:
			data = yaml.safe_load(f) or {}
		logger.info(f"Loaded placement config from {path}")
	elif path:
		logger.info(f"Config file {path} not found, using defaults")
	return _apply_env(config_from_dict(data))
