import pytest

from conftest import GW_BIG, GW_SMALL, USER, make_request

from fogplace.errors import ErrorKind
from fogplace.ledger import DeviceState
from fogplace.metrics import PlacementMonitor, decision_latency, utilisation_spread
from fogplace.request import FailureReason


def test_utilisation_spread_is_zero_when_balanced():
    ledgers = [DeviceState(i, 100, 100, 0) for i in range(3)]
    assert utilisation_spread(ledgers) == 0.0
    assert utilisation_spread([]) == 0.0


def test_utilisation_spread_combines_cpu_and_ram():
    busy = DeviceState(1, 100, 100, 0)
    busy.allocate(100, 0, 0)
    idle = DeviceState(2, 100, 100, 0)
    # cpu std over [1, 0] is 0.5, ram std is 0
    assert utilisation_spread([busy, idle]) == pytest.approx((0.5 * 0.25) ** 0.5)


def test_decision_latency_skips_the_return_hop(topology):
    pr = make_request()
    pr.request_latency = 2.0
    pr.placed = {"M1": GW_BIG, "M2": GW_SMALL, "client": USER}
    assert decision_latency(pr, topology) == 2.0 + 20
    pr.placed = {"client": USER}
    assert decision_latency(pr, topology) == 0.0


def test_monitor_summary():
    monitor = PlacementMonitor()
    monitor.record_total(2, 0.0)
    monitor.record_success(make_request(sensor_id=1), 0.0, latency=4.0, utilisation=0.2)
    monitor.record_failure(make_request(sensor_id=2), FailureReason.PLACEMENT_FAILED, 0.0)
    monitor.record_error(ErrorKind.TIMEOUT, "cycle 1", 30.0)
    monitor.record_cycle(1, "timed_out")

    summary = monitor.summary()
    assert summary["total_requests"] == 2
    assert summary["succeeded"] == 1
    assert summary["failed"] == 1
    assert summary["mean_latency"] == 4.0
    assert summary["mean_utilisation_spread"] == pytest.approx(0.2)
    assert summary["timeouts"] == 1
    assert summary["cycles"] == {1: "timed_out"}
