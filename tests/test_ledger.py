import pytest

from fogplace.ledger import CPU, RAM, STORAGE, DeviceState, ResourceAvailability


def test_can_fit_accepts_exact_capacity():
    ledger = DeviceState(1, total_cpu=100, total_ram=50, total_storage=10)
    assert ledger.can_fit(100, 50, 10)
    assert not ledger.can_fit(100.5, 50, 10)
    assert not ledger.can_fit(1, 1, 11)


def test_allocate_and_deallocate_do_not_clamp():
    ledger = DeviceState(1, total_cpu=100, total_ram=50, total_storage=10)
    ledger.allocate(120, 10, 0)
    assert ledger.free_cpu == -20
    ledger.deallocate(120, 10, 0)
    assert (ledger.free_cpu, ledger.free_ram, ledger.free_storage) == (100, 50, 10)


def test_utilisation_of_empty_node_is_full():
    ledger = DeviceState(1, total_cpu=0, total_ram=10, total_storage=0)
    assert ledger.cpu_util == 1.0
    assert ledger.ram_util == 0.0
    assert ledger.storage_util == 1.0


def test_ordering_uses_cpu_then_ram_then_id():
    a = DeviceState(2, total_cpu=100, total_ram=100, total_storage=0)
    b = DeviceState(1, total_cpu=50, total_ram=100, total_storage=0)
    c = DeviceState(3, total_cpu=100, total_ram=100, total_storage=0)
    c.allocate(10, 0, 0)
    assert [l.node_id for l in sorted([a, b, c])] == [1, 2, 3]
    b.allocate(0, 20, 0)
    assert [l.node_id for l in sorted([a, b, c])] == [2, 1, 3]


def test_copy_is_independent():
    ledger = DeviceState(1, total_cpu=100, total_ram=50, total_storage=10)
    clone = ledger.copy()
    clone.allocate(10, 10, 10)
    assert ledger.free_cpu == 100
    assert clone.free_cpu == 90


def test_resource_deltas_are_additive():
    resources = ResourceAvailability({1: {CPU: 100, RAM: 50, STORAGE: 10}})
    resources.apply_delta(1, {CPU: -30})
    resources.apply_delta(1, {CPU: -20, RAM: -5})
    resources.apply_delta(1, {CPU: 10})
    assert resources.get(1, CPU) == 60
    assert resources.get(1, RAM) == 45
    assert resources.get(1, STORAGE) == 10


def test_delta_for_unknown_node_creates_entry():
    resources = ResourceAvailability()
    resources.apply_delta(7, {CPU: 5.0})
    assert 7 in resources
    assert resources.get(7, CPU) == 5.0
    assert resources.get(8, CPU) is None


def test_consume_scales_with_instance_count():
    resources = ResourceAvailability({1: {CPU: 100, RAM: 100, STORAGE: 100}})
    resources.consume(1, cpu=10, ram=5, storage=1, count=3)
    assert resources.snapshot()[1] == {CPU: 70, RAM: 85, STORAGE: 97}


def test_snapshot_is_a_deep_copy():
    resources = ResourceAvailability({1: {CPU: 100, RAM: 100, STORAGE: 100}})
    snap = resources.snapshot()
    snap[1][CPU] = 0
    assert resources.get(1, CPU) == 100


def test_ledger_for_uses_free_values_and_totals():
    resources = ResourceAvailability({1: {CPU: 40, RAM: 100, STORAGE: 100}})
    ledger = resources.ledger_for(1, 100, 100, 100)
    assert ledger.free_cpu == 40
    assert ledger.cpu_util == pytest.approx(0.6)
    fresh = resources.ledger_for(2, 10, 20, 30)
    assert (fresh.free_cpu, fresh.free_ram, fresh.free_storage) == (10, 20, 30)


def test_delta_order_does_not_matter():
    deltas = [{CPU: 5}, {CPU: -3}, {CPU: 2}]
    finals = []
    for order in (deltas, deltas[::-1], [deltas[1], deltas[0], deltas[2]]):
        resources = ResourceAvailability({1: {CPU: 10, RAM: 0, STORAGE: 0}})
        for delta in order:
            resources.apply_delta(1, delta)
        finals.append(resources.get(1, CPU))
    assert finals == [14, 14, 14]
