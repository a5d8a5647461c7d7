"""
Run one scenario under every placement heuristic and print how many
requests each one placed, how many failed, and the mean decision latency.
"""

from __future__ import annotations

import argparse
import copy
import logging
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
	sys.path.insert(0, str(ROOT))

from fogplace.config import PlacementConfig, load_config
from fogplace.placement import HeuristicKind
from fogplace.scenario import Simulation, load_scenario


def main() -> None:
	parser = argparse.ArgumentParser(description="Compare placement heuristics on one scenario")
	parser.add_argument("--scenario", default=str(ROOT / "deploy" / "scenario.yaml"))
	parser.add_argument("--config", default=None, help="Engine config YAML (defaults to the scenario's own)")
	parser.add_argument("--seed", type=int, default=None)
	parser.add_argument("--only", nargs="*", default=None, help="Heuristic names to run (default: all)")
	parser.add_argument("--verbose", action="store_true")
	args = parser.parse_args()

	logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
	scenario = load_scenario(args.scenario)
	base = load_config(args.config) if args.config else (scenario.config or PlacementConfig())
	if args.seed is not None:
		base.seed = args.seed

	kinds = [HeuristicKind.parse(name) for name in args.only] if args.only else list(HeuristicKind)
	print(f"{'heuristic':<22}{'placed':>8}{'failed':>8}{'latency':>12}{'spread':>10}{'timeouts':>10}")
	for kind in kinds:
		config = copy.deepcopy(base)
		config.heuristic = kind.name
		report = Simulation(copy.deepcopy(scenario), config).run()
		summary = report.summary
		print(
			f"{kind.name:<22}{summary['succeeded']:>8}{summary['failed']:>8}"
			f"{summary['mean_latency']:>12.2f}{summary['mean_utilisation_spread']:>10.4f}{summary['timeouts']:>10}"
		)


if __name__ == "__main__":
	main()
