from typing import Dict, List, Optional, Set

import pytest

from rail_reach.departures import HafasError, parse_departures
from rail_reach.stations import CountryLookup


def make_stop(stop_id: str, lat: float = 50.0, lon: float = 8.0) -> Dict:
    return {
        'type': 'stop',
        'id': stop_id,
        'name': f"Station {stop_id}",
        'location': {'type': 'location', 'id': stop_id, 'latitude': lat, 'longitude': lon},
    }


def make_departure(
    origin: str,
    when: str,
    stopovers: List[tuple],
    mode: str = 'train',
    name: Optional[str] = 'RE 1',
    trip_id: str = 'trip-1',
    line_id: Optional[str] = 're-1',
) -> Dict:
    """stopovers: (stop id, arrival iso or None)"""
    return {
        'tripId': trip_id,
        'stop': make_stop(origin),
        'when': when,
        'direction': 'Somewhere',
        'line': {'type': 'line', 'id': line_id, 'name': name, 'mode': mode, 'product': 'regional'},
        'nextStopovers': [
            {'stop': make_stop(stop_id), 'arrival': arrival, 'departure': arrival}
            for stop_id, arrival in stopovers
        ],
    }


class FakeProvider:
    """Serves canned departure records per station and records every fetch"""

    def __init__(self, records: Dict[str, List[Dict]], failing: Optional[Set[str]] = None):
        self.records = records
        self.failing = failing or set()
        self.calls: List[str] = []

    async def fetch(self, station_id, when):
        self.calls.append(station_id)
        if station_id in self.failing:
            raise HafasError(f"no data for {station_id}")
        return parse_departures(self.records.get(station_id, []), station_id)


@pytest.fixture
def countries():
    return CountryLookup(geocoder=lambda lon, lat: 'DE')


@pytest.fixture
def abc_records():
    """One trip A 10:00 -> B 10:30 -> C 11:00"""
    return {
        'A': [make_departure('A', '2024-05-01T10:00:00+02:00', [
            ('A', None),
            ('B', '2024-05-01T10:30:00+02:00'),
            ('C', '2024-05-01T11:00:00+02:00'),
        ])],
    }
