"""Placement heuristics and the factory that selects one by name."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from fogplace.errors import ConfigurationError


class HeuristicKind(Enum):
    EDGEWARD = 6
    BEST_FIT = 7
    CLOSEST_FIT = 8
    MAX_FIT = 9
    RANDOM = 10
    MULTI_OPT = 11
    SIMULATED_ANNEALING = 12
    ACO = 13
    ILP = 14

    @classmethod
    def parse(cls, value: Union[str, int, "HeuristicKind"]) -> "HeuristicKind":
        if isinstance(value, HeuristicKind):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ConfigurationError(f"Unknown heuristic id: {value}") from None
        name = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        name = _ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError:
            raise ConfigurationError(f"Unknown heuristic: {value}") from None


_ALIASES = {
    "ONLINE_POC": "EDGEWARD",
    "BESTFIT": "BEST_FIT",
    "CLOSESTFIT": "CLOSEST_FIT",
    "MAXFIT": "MAX_FIT",
    "MULTIOPT": "MULTI_OPT",
    "SA": "SIMULATED_ANNEALING",
}


def create_heuristic(name, orchestrator_id: int, config=None, monitor=None):
    """Build the heuristic named by ``name`` (enum, id or case-insensitive name)."""
    from fogplace.placement.aco import AntColonyHeuristic
    from fogplace.placement.annealing import SimulatedAnnealingHeuristic
    from fogplace.placement.edgeward import EdgewardHeuristic
    from fogplace.placement.first_fit import (
        BestFitHeuristic,
        ClosestFitHeuristic,
        MaxFitHeuristic,
        MultiOptHeuristic,
        RandomHeuristic,
    )
    from fogplace.placement.ilp import ILPHeuristic

    registry = {
        HeuristicKind.EDGEWARD: EdgewardHeuristic,
        HeuristicKind.BEST_FIT: BestFitHeuristic,
        HeuristicKind.CLOSEST_FIT: ClosestFitHeuristic,
        HeuristicKind.MAX_FIT: MaxFitHeuristic,
        HeuristicKind.RANDOM: RandomHeuristic,
        HeuristicKind.MULTI_OPT: MultiOptHeuristic,
        HeuristicKind.SIMULATED_ANNEALING: SimulatedAnnealingHeuristic,
        HeuristicKind.ACO: AntColonyHeuristic,
        HeuristicKind.ILP: ILPHeuristic,
    }
    kind = HeuristicKind.parse(name)
    return registry[kind](orchestrator_id, config=config, monitor=monitor)
