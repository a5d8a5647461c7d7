import pytest

from conftest import GW_BIG, GW_SMALL, USER, make_request

from fogplace.decision import assemble_decision, build_per_device, clean_requests, determine_targets
from fogplace.errors import ProtocolIntegrityError
from fogplace.request import SUCCESS, PlacementOutcome


def test_clean_requests_merges_only_successes(applications):
    ok = make_request(sensor_id=1)
    bad = make_request(sensor_id=2)
    mapped = {
        ok.key: {"client": USER, "M1": GW_BIG, "M2": GW_SMALL},
        bad.key: {"client": USER},
    }
    outcomes = {ok: SUCCESS, bad: PlacementOutcome.failed(0)}

    placements = clean_requests([ok, bad], mapped, outcomes, applications)

    assert placements == {ok.key: {"M1": GW_BIG, "M2": GW_SMALL}}
    assert list(ok.placed) == ["M1", "M2", "client"]
    assert bad.placed == {"client": USER}


def test_client_module_stays_put_when_not_first(applications):
    pr = make_request()
    pr.placed = {"M1": GW_BIG, "client": USER}
    clean_requests([pr], {pr.key: {"M1": GW_BIG, "client": USER, "M2": GW_SMALL}}, {pr: SUCCESS}, applications)
    assert list(pr.placed) == ["M1", "client", "M2"]


def test_targets_need_a_second_service_host(applications):
    pr = make_request()
    with pytest.raises(ProtocolIntegrityError):
        determine_targets([pr], {pr: SUCCESS}, applications)
    pr.placed["M1"] = GW_BIG
    assert determine_targets([pr], {pr: SUCCESS}, applications) == {pr: GW_BIG}


def test_failed_requests_get_no_target(applications):
    pr = make_request()
    assert determine_targets([pr], {pr: PlacementOutcome.failed(0)}, applications) == {}


def test_per_device_groups_by_node_and_app(applications):
    counts = {GW_BIG: {"chain": {"M1": 2, "M2": 0}}, GW_SMALL: {"chain": {"M2": 1}}}
    per_device = build_per_device(counts, applications)
    assert [(c.module.name, c.instance_count) for c in per_device[GW_BIG]["chain"]] == [("M1", 2)]
    assert [(c.module.name, c.instance_count) for c in per_device[GW_SMALL]["chain"]] == [("M2", 1)]


def test_assemble_decision_lists_discovery_for_client_hosts(applications):
    first = make_request(sensor_id=1)
    second = make_request(sensor_id=2)
    mapped = {
        first.key: {"client": USER, "M1": GW_BIG, "M2": GW_SMALL},
        second.key: {"client": USER, "M1": GW_BIG, "M2": GW_BIG},
    }
    counts = {GW_BIG: {"chain": {"M1": 2, "M2": 1}}, GW_SMALL: {"chain": {"M2": 1}}}
    decision = assemble_decision(
        [first, second], mapped, {first: SUCCESS, second: SUCCESS}, counts, applications
    )

    gw_entries = sorted((e.microservice, e.node_id, e.sensor_id) for e in decision.service_discovery[GW_BIG])
    assert gw_entries == [("M2", GW_BIG, 2), ("M2", GW_SMALL, 1)]
    assert len(decision.service_discovery[USER]) == 2
    assert decision.targets == {first: GW_BIG, second: GW_BIG}
    assert decision.successful() == [first, second]
    assert decision.failed() == []
