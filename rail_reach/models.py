"""
Plain data types shared by the scraper, the graph and the checkpoint store
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional


@dataclass(frozen=True)
class Position:
    lat: float
    long: float


@dataclass(frozen=True)
class Station:
    """A station; identity is the id, the other fields may be filled in later"""

    id: str
    name: str
    position: Optional[Position] = None
    country: Optional[str] = None

    def merged_with(self, other: "Station") -> "Station":
        """Keep every known field of self, fill only the missing ones from other"""
        return replace(
            self,
            name=self.name if self.name is not None else other.name,
            position=self.position if self.position is not None else other.position,
            country=self.country if self.country is not None else other.country,
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'position': (
                {'lat': self.position.lat, 'long': self.position.long}
                if self.position is not None else None
            ),
            'country': self.country,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Station":
        position = data.get('position')
        return cls(
            id=str(data['id']),
            name=data.get('name'),
            position=Position(position['lat'], position['long']) if position else None,
            country=data.get('country'),
        )


@dataclass(frozen=True)
class Reachable:
    station: Station
    duration: float  # minutes
    direct: bool
    line: Optional[str] = None


@dataclass(frozen=True)
class StationReachables:
    """Result of one scheduler job; reachables is None when the fetch gave no data"""

    station: Station
    reachables: Optional[List[Reachable]]


@dataclass
class Edge:
    duration: float
    direct: bool


@dataclass
class Progress:
    """day index -> station id -> done"""

    days: Dict[int, Dict[str, bool]] = field(default_factory=dict)
    start_date: Optional[str] = None

    def is_done(self, day: int, station_id: str) -> bool:
        return self.days.get(day, {}).get(station_id) is True

    def mark_done(self, day: int, station_id: str):
        self.days.setdefault(day, {})[station_id] = True

    def done_count(self, day: int) -> int:
        return sum(1 for done in self.days.get(day, {}).values() if done)

    def to_dict(self) -> Dict:
        return {
            'start_date': self.start_date,
            'days': {str(day): dict(stations) for day, stations in self.days.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Progress":
        days = {
            int(day): {str(k): bool(v) for k, v in stations.items()}
            for day, stations in (data.get('days') or {}).items()
        }
        return cls(days=days, start_date=data.get('start_date'))
