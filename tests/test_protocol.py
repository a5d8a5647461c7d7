import pytest

from conftest import make_request

from fogplace.discovery import ServiceDiscoveryEntry, ServiceDiscoveryIndex
from fogplace.errors import ProtocolIntegrityError, RoutingError
from fogplace.protocol import (
    DiscoveryAction,
    DiscoveryUpdate,
    InstallNotification,
    MessageKind,
    ProtocolMessage,
)


def test_discovery_is_scoped_per_request():
    index = ServiceDiscoveryIndex(owner_id=1)
    index.add("M1", 5, sensor_id=1, request_index=0)
    index.add("M1", 6, sensor_id=1, request_index=1)

    assert index.lookup("M1", 1, 0) == 5
    assert index.lookup("M1", 1, 1) == 6
    assert index.lookup("M1", 2, 0) is None
    assert len(index) == 2
    assert [e.node_id for e in index.entries_for("M1")] == [5, 6]


def test_discovery_require_never_falls_back():
    index = ServiceDiscoveryIndex(owner_id=1)
    index.add("M1", 5, sensor_id=1, request_index=0)
    with pytest.raises(ProtocolIntegrityError):
        index.require("M1", 2, 0)


def test_discovery_remove_missing_entry_raises():
    index = ServiceDiscoveryIndex(owner_id=1)
    index.add("M1", 5, sensor_id=1, request_index=0)
    index.remove("M1", 5, 1, 0)
    assert len(index) == 0
    assert index.entries_for("M1") == []
    with pytest.raises(ProtocolIntegrityError):
        index.remove("M1", 5, 1, 0)


def test_message_payload_must_match_kind():
    entry = ServiceDiscoveryEntry("M1", 1, 1, 0)
    ProtocolMessage(MessageKind.SERVICE_DISCOVERY_UPDATE, 0, 1, DiscoveryUpdate(DiscoveryAction.ADD, entry))
    with pytest.raises(ProtocolIntegrityError):
        ProtocolMessage(MessageKind.DEPLOYMENT_REQUEST, 0, 1, InstallNotification(1, 1))
    with pytest.raises(ProtocolIntegrityError):
        ProtocolMessage(MessageKind.PLACEMENT_REQUEST, 0, 1, {"sensor": 1})


def test_message_needs_a_destination():
    with pytest.raises(RoutingError):
        ProtocolMessage(MessageKind.PLACEMENT_REQUEST, 3, -1, make_request())
    with pytest.raises(RoutingError):
        ProtocolMessage(MessageKind.PLACEMENT_REQUEST, 3, None, make_request())


def test_message_id_is_unassigned_until_sent():
    message = ProtocolMessage(MessageKind.INSTALL_NOTIFICATION, 1, 0, InstallNotification(1, 1))
    assert message.message_id == 0
