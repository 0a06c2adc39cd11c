"""
Station feed (trainline stations CSV) and country lookup for station coordinates
"""

import csv
import io
import logging
from typing import AsyncIterator, Callable, Dict, Iterable, Optional

import httpx
import reverse_geocoder
from pydantic import BaseModel, ValidationError

from .config import API_CONFIG, SCRAPER_CONFIG
from .models import Position, Station

logger = logging.getLogger(__name__)


class FeedStation(BaseModel):
    id: str
    db_id: Optional[str] = None
    name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    parent_station_id: Optional[str] = None
    country: str
    time_zone: str
    is_city: bool
    is_main_station: bool
    is_airport: bool
    is_suggestable: bool
    country_hint: bool
    main_station_hint: bool
    db_is_enabled: bool


def _cast(value: str):
    if value == '':
        return None
    if value == 't':
        return True
    if value == 'f':
        return False
    return value


async def _lines_from_url(url: str, client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[str]:
    if client is None:
        async with httpx.AsyncClient(timeout=API_CONFIG['timeout'], follow_redirects=True) as client:
            async for line in _lines_from_url(url, client):
                yield line
        return

    async with client.stream('GET', url) as response:
        response.raise_for_status()
        async for line in response.aiter_lines():
            yield line


async def _lines_from_file(path: str) -> AsyncIterator[str]:
    with open(path, 'r', encoding='utf-8', newline='') as f:
        for line in f:
            yield line.rstrip('\r\n')


async def stream_stations_raw(
    source: str = SCRAPER_CONFIG['stations_url'],
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[Dict]:
    """Rows of the feed as dicts, read line by line from a URL or a local file"""
    if source.startswith(('http://', 'https://')):
        lines = _lines_from_url(source, client)
    else:
        lines = _lines_from_file(source)

    header = None
    pending = ''
    async for line in lines:
        pending = f"{pending}\n{line}" if pending else line
        # An odd quote count means a quoted field continues on the next line
        if pending.count('"') % 2:
            continue
        record, pending = pending, ''
        if not record.strip():
            continue
        row = next(csv.reader(io.StringIO(record), delimiter=';'))
        if header is None:
            header = row
            continue
        yield {key: _cast(value) for key, value in zip(header, row)}


async def stream_stations(
    source: str = SCRAPER_CONFIG['stations_url'],
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[FeedStation]:
    async for record in stream_stations_raw(source, client):
        try:
            yield FeedStation.model_validate(record)
        except ValidationError as e:
            logger.warning("Skipping invalid station record %s: %s", record.get('id'), e)


async def stream_processed_stations(
    source: str = SCRAPER_CONFIG['stations_url'],
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[Station]:
    """Feed stations known to the departure provider, as graph stations"""
    async for station in stream_stations(source, client):
        if station.db_id is None:
            continue

        position = None
        if station.latitude is not None and station.longitude is not None:
            position = Position(lat=station.latitude, long=station.longitude)

        yield Station(
            id=station.db_id,
            name=station.name,
            position=position,
            country=station.country,
        )


def reverse_geocode_country(longitude: float, latitude: float) -> Optional[str]:
    """Offline country code for a coordinate"""
    results = reverse_geocoder.search([(latitude, longitude)], mode=1, verbose=False)
    if not results:
        return None
    return results[0].get('cc')


class CountryLookup:
    """Memoized reverse geocoding, scoped to one crawl run"""

    def __init__(
        self,
        geocoder: Optional[Callable[[float, float], Optional[str]]] = None,
        precision: int = 4,
    ):
        self._geocoder = geocoder or reverse_geocode_country
        self._precision = precision
        self._by_coordinates: Dict[str, Optional[str]] = {}
        self._by_station: Dict[str, Optional[str]] = {}

    def seed(self, stations: Iterable[Station]):
        for station in stations:
            if station.country is not None:
                self._by_station[station.id] = station.country

    def for_coordinates(self, longitude: float, latitude: float) -> Optional[str]:
        key = f"{round(longitude, self._precision)}_{round(latitude, self._precision)}"
        if key not in self._by_coordinates:
            logger.debug("Reverse geocoding %s", key)
            self._by_coordinates[key] = self._geocoder(longitude, latitude)
        return self._by_coordinates[key]

    def for_station(
        self,
        station_id: str,
        longitude: Optional[float] = None,
        latitude: Optional[float] = None,
    ) -> Optional[str]:
        if station_id not in self._by_station and longitude is not None and latitude is not None:
            self._by_station[station_id] = self.for_coordinates(longitude, latitude)
        return self._by_station.get(station_id)
