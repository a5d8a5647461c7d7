from __future__ import annotations

import os
import logging
from pathlib import Path

from fogplace.api import create_app
from fogplace.config import load_config
from fogplace.scenario import load_scenario

logger = logging.getLogger(__name__)


def build_app():
	"""Build the Flask app with the configured scenario and engine config."""
	config_path = os.getenv(
		"FOGPLACE_CONFIG_PATH",
		str(Path(__file__).parent / "deploy" / "config.yaml")
	)
	config = load_config(config_path)

	scenario_path = os.getenv(
		"FOGPLACE_SCENARIO_PATH",
		str(Path(__file__).parent / "deploy" / "scenario.yaml")
	)
	scenario = None
	if os.path.exists(scenario_path):
		scenario = load_scenario(scenario_path)
		logger.info(f"Serving scenario {scenario_path}")
	else:
		logger.info("Scenario file not found, /simulate requires a scenario in the request body")

	return create_app(scenario, config=config)


# Build app at module level (for gunicorn)
app = build_app()


if __name__ == "__main__":
	app.run(host="0.0.0.0", port=8080)
