from pathlib import Path

import pytest

from conftest import chain_scenario_dict

from fogplace.config import ProcessingMode
from fogplace.errors import ConfigurationError
from fogplace.scenario import Simulation, load_scenario, scenario_from_dict

ROOT = Path(__file__).resolve().parents[1]


def test_scenario_from_dict():
    scenario = scenario_from_dict(chain_scenario_dict())
    assert [n.node_id for n in scenario.topology.nodes()] == [0, 1, 2, 3]
    assert set(scenario.applications) == {"chain"}
    request = scenario.requests[0].request
    assert request.requester_id == 3
    assert request.placed == {"client": 3}
    assert scenario.config.placement_interval == 50.0


def test_request_for_unknown_app_rejected():
    data = chain_scenario_dict()
    data["requests"][0]["app"] = "missing"
    with pytest.raises(ConfigurationError):
        scenario_from_dict(data)


def test_periodic_run_places_deploys_and_executes():
    report = Simulation(scenario_from_dict(chain_scenario_dict())).run()

    assert report.heuristic == "BestFit"
    assert report.outcomes == {"1:0": "success"}
    assert report.decisions[0]["cycle"] == 1
    assert report.decisions[0]["placements"] == {"1:0": {"M1": 1, "M2": 2}}
    assert report.cycles == {1: "complete"}
    assert report.completed == [{"request": "1:0", "path": [[3, "client"], [1, "M1"], [2, "M2"]]}]
    assert report.summary["succeeded"] == 1
    assert report.summary["timeouts"] == 0
    # placement at 50, deploy 55, acks 60, data reaches M2 at 75, timeout event at 80
    assert report.end_time == 80.0


def test_slow_installs_time_out_and_never_execute():
    scenario = scenario_from_dict(chain_scenario_dict(module_deployment_time=40.0))
    report = Simulation(scenario).run()
    assert report.cycles == {1: "timed_out"}
    assert report.completed == []
    assert report.summary["timeouts"] == 1


def test_sequential_mode_places_on_arrival():
    scenario = scenario_from_dict(chain_scenario_dict(processing_mode="sequential"))
    assert scenario.config.processing_mode == ProcessingMode.SEQUENTIAL
    sim = Simulation(scenario)
    report = sim.run()
    assert report.outcomes == {"1:0": "success"}
    assert sim.coordinator.cycle(1).opened_at == 6.0
    assert len(report.completed) == 1


def test_failed_request_is_not_retried():
    data = chain_scenario_dict()
    data["requests"].append({"app": "chain", "sensor": 2, "index": 0, "requester": "user", "time": 0.0})
    sim = Simulation(scenario_from_dict(data))
    report = sim.run()
    assert report.outcomes == {"1:0": "success", "2:0": "placement_failed"}
    assert len(report.decisions) == 1
    assert sim.orchestrator.queue == []
    assert [pr.sensor_id for pr in sim.orchestrator.failed] == [2]


def test_simulation_runs_once():
    sim = Simulation(scenario_from_dict(chain_scenario_dict()))
    sim.run()
    with pytest.raises(ConfigurationError):
        sim.run()


def test_bundled_scenario_runs_under_every_heuristic():
    from fogplace.config import PlacementConfig
    from fogplace.placement import HeuristicKind

    for kind in HeuristicKind:
        scenario = load_scenario(str(ROOT / "deploy" / "scenario.yaml"))
        config = PlacementConfig(heuristic=kind.name)
        config.aco.ants = 5
        config.aco.iterations = 2
        config.annealing.cooling_factor = 0.9
        report = Simulation(scenario, config).run()
        summary = report.summary
        assert summary["succeeded"] + summary["failed"] == 4, kind.name
        assert summary["succeeded"] >= 1, kind.name
        assert all(state == "complete" for state in report.cycles.values()), kind.name


def test_request_from_undersized_user_is_never_sent():
    data = chain_scenario_dict()
    # the user node has 10 cpu
    data["applications"][0]["modules"][0]["cpu"] = 50
    sim = Simulation(scenario_from_dict(data))
    report = sim.run()
    assert report.outcomes == {"1:0": "user_lacked_resources"}
    assert report.decisions == []
    assert sim.orchestrator.queue == []
    assert report.summary["failed"] == 1
