from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from fogplace.errors import ConfigurationError


class Direction(Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class AppModule:
    name: str
    cpu: float
    ram: float = 0.0
    storage: float = 0.0


@dataclass(frozen=True)
class AppEdge:
    source: str
    destination: str
    direction: Direction = Direction.UP
    tuple_type: Optional[str] = None
    cpu_length: float = 0.0
    nw_length: float = 0.0


@dataclass
class Application:
    """Module/edge graph for one application.

    ``pinned`` maps a module name to the names of nodes that must host it
    regardless of heuristic. ``first_service`` is the client module that
    lives on the requesting device; ``second_services`` are the modules it
    talks to first, whose hosts are told to start execution.
    """
    app_id: str
    modules: List[AppModule]
    edges: List[AppEdge] = field(default_factory=list)
    pinned: Dict[str, List[str]] = field(default_factory=dict)
    first_service: Optional[str] = None
    second_services: Optional[List[str]] = None

    def __post_init__(self) -> None:
        self._by_name: Dict[str, AppModule] = {}
        for module in self.modules:
            if module.name in self._by_name:
                raise ConfigurationError(f"Duplicate module '{module.name}' in application '{self.app_id}'")
            self._by_name[module.name] = module
        for edge in self.edges:
            for name in (edge.source, edge.destination):
                if name not in self._by_name:
                    raise ConfigurationError(f"Edge references unknown module '{name}' in application '{self.app_id}'")
        if self.first_service is None:
            self.first_service = self._infer_first_service()
        if self.second_services is None:
            self.second_services = [
                edge.destination
                for edge in self.edges
                if edge.source == self.first_service and edge.direction == Direction.UP
            ]

    def _infer_first_service(self) -> Optional[str]:
        fed_up = {edge.destination for edge in self.edges if edge.direction == Direction.UP}
        for edge in self.edges:
            if edge.source not in fed_up:
                return edge.source
        return self.modules[0].name if self.modules else None

    def module(self, name: str) -> AppModule:
        try:
            return self._by_name[name]
        except KeyError:
            raise ConfigurationError(f"Module '{name}' not found in application '{self.app_id}'") from None

    def module_names(self) -> List[str]:
        return [module.name for module in self.modules]

    def client_services(self, module_name: str) -> List[str]:
        return [
            edge.source
            for edge in self.edges
            if edge.destination == module_name and edge.direction == Direction.UP
        ]

    def start_edge(self) -> Optional[AppEdge]:
        for edge in self.edges:
            if edge.source == self.first_service:
                return edge
        return None


def application_from_dict(data: Dict[str, Any]) -> Application:
    modules = [
        AppModule(
            name=m["name"],
            cpu=float(m.get("cpu", 0.0)),
            ram=float(m.get("ram", 0.0)),
            storage=float(m.get("storage", 0.0)),
        )
        for m in data.get("modules", [])
    ]
    edges = []
    for e in data.get("edges", []):
        try:
            direction = Direction(str(e.get("direction", "up")).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown edge direction: {e.get('direction')}") from None
        edges.append(
            AppEdge(
                source=e["source"],
                destination=e["destination"],
                direction=direction,
                tuple_type=e.get("tuple_type"),
                cpu_length=float(e.get("cpu_length", 0.0)),
                nw_length=float(e.get("nw_length", 0.0)),
            )
        )
    pinned = {name: list(hosts) for name, hosts in (data.get("pinned") or {}).items()}
    return Application(
        app_id=data["id"],
        modules=modules,
        edges=edges,
        pinned=pinned,
        first_service=data.get("first_service"),
        second_services=data.get("second_services"),
    )
