import pytest

from fogplace.application import AppEdge, AppModule, Application, Direction, application_from_dict
from fogplace.errors import ConfigurationError
from fogplace.resolver import all_remaining, next_layer


def _display_app():
    # proc sends its results down to display, so display has to be placed first
    return Application(
        app_id="display",
        modules=[AppModule("client", 0), AppModule("proc", 10), AppModule("display", 5)],
        edges=[
            AppEdge("client", "proc"),
            AppEdge("proc", "display", direction=Direction.DOWN),
        ],
    )


def test_first_and_second_services_are_inferred(chain_app):
    assert chain_app.first_service == "client"
    assert chain_app.second_services == ["M1"]
    assert chain_app.client_services("M2") == ["M1"]
    assert chain_app.start_edge().destination == "M1"


def test_duplicate_module_rejected():
    with pytest.raises(ConfigurationError):
        Application("dup", modules=[AppModule("a", 1), AppModule("a", 2)])


def test_edge_to_unknown_module_rejected():
    with pytest.raises(ConfigurationError):
        Application("bad", modules=[AppModule("a", 1)], edges=[AppEdge("a", "b")])


def test_unknown_module_lookup_raises(chain_app):
    with pytest.raises(ConfigurationError):
        chain_app.module("nope")


def test_application_from_dict():
    app = application_from_dict(
        {
            "id": "cam",
            "modules": [{"name": "client", "cpu": 1}, {"name": "detector", "cpu": 100, "ram": 64, "storage": 5}],
            "edges": [
                {"source": "client", "destination": "detector", "tuple_type": "RAW"},
                {"source": "detector", "destination": "client", "direction": "down"},
            ],
            "pinned": {"detector": ["gw-1"]},
        }
    )
    assert app.first_service == "client"
    assert app.second_services == ["detector"]
    assert app.module("detector").storage == 5
    assert app.edges[1].direction == Direction.DOWN
    assert app.pinned == {"detector": ["gw-1"]}


def test_next_layer_follows_up_edges(chain_app):
    assert next_layer(chain_app, set()) == ["client"]
    assert next_layer(chain_app, {"client"}) == ["M1"]
    assert next_layer(chain_app, {"client", "M1"}) == ["M2"]
    assert next_layer(chain_app, {"client", "M1", "M2"}) == []


def test_all_remaining_is_breadth_first_and_pure(chain_app):
    placed = {"client"}
    assert all_remaining(chain_app, placed) == ["M1", "M2"]
    assert placed == {"client"}


def test_down_edge_requires_destination_first():
    app = _display_app()
    assert next_layer(app, {"client"}) == ["display"]
    assert all_remaining(app, ["client"]) == ["display", "proc"]
