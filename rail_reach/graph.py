"""
Directed weighted reachability graph between stations
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .models import Edge, Station, StationReachables


class GraphInvariantError(RuntimeError):
    """An edge was touched before both of its endpoints were registered"""


@dataclass
class Graph:
    nodes: Dict[str, Station] = field(default_factory=dict)
    edges: Dict[Tuple[str, str], Edge] = field(default_factory=dict)

    def add_vertex(self, station: Station):
        existing = self.nodes.get(station.id)
        self.nodes[station.id] = existing.merged_with(station) if existing else station

    def _check_endpoints(self, from_id: str, to_id: str):
        if from_id not in self.nodes:
            raise GraphInvariantError(f"from: {from_id} missing in nodes")
        if to_id not in self.nodes:
            raise GraphInvariantError(f"to: {to_id} missing in nodes")

    def get_edge(self, from_id: str, to_id: str) -> Optional[Edge]:
        self._check_endpoints(from_id, to_id)
        return self.edges.get((from_id, to_id))

    def relax_edge(self, from_id: str, to_id: str, duration: float, direct: bool):
        """Add the edge, or improve an existing one to the better observation"""
        if from_id == to_id:
            raise GraphInvariantError(f"self-loop on {from_id}")

        edge = self.get_edge(from_id, to_id)

        if edge is None:
            self.edges[(from_id, to_id)] = Edge(duration=duration, direct=direct)
            return

        # Any direct observation makes the edge direct, even if it is not the fastest one
        edge.direct = edge.direct or direct
        edge.duration = min(edge.duration, duration)

    def update(self, data: StationReachables):
        """Fold one station's reachables into the graph"""
        if data.reachables is None:
            return

        self.add_vertex(data.station)

        for reachable in data.reachables:
            self.add_vertex(reachable.station)
            self.relax_edge(
                data.station.id, reachable.station.id, reachable.duration, reachable.direct
            )

    def statistics(self) -> Dict:
        durations = [edge.duration for edge in self.edges.values()]
        stats = {
            'total_stations': len(self.nodes),
            'total_connections': len(self.edges),
            'direct_connections': sum(1 for edge in self.edges.values() if edge.direct),
            'countries_covered': sorted(
                {node.country for node in self.nodes.values() if node.country}
            ),
            'duration_stats': {},
        }

        if durations:
            stats['duration_stats'] = {
                'min_duration_minutes': min(durations),
                'max_duration_minutes': max(durations),
                'avg_duration_minutes': sum(durations) / len(durations),
            }

        return stats

    def to_dict(self) -> Dict:
        adjacency: Dict[str, Dict[str, Dict]] = {}
        for (from_id, to_id), edge in self.edges.items():
            adjacency.setdefault(from_id, {})[to_id] = {
                'duration': edge.duration,
                'direct': edge.direct,
            }

        return {
            'nodes': {node_id: node.to_dict() for node_id, node in self.nodes.items()},
            'adjacency': adjacency,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Graph":
        graph = cls(
            nodes={
                str(node_id): Station.from_dict(node)
                for node_id, node in (data.get('nodes') or {}).items()
            }
        )

        for from_id, targets in (data.get('adjacency') or {}).items():
            for to_id, edge in targets.items():
                graph._check_endpoints(from_id, to_id)
                graph.edges[(from_id, to_id)] = Edge(
                    duration=float(edge['duration']), direct=bool(edge['direct'])
                )

        return graph
