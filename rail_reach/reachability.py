"""
Which stations can be reached from a station on a given day, and how fast
"""

import logging
from datetime import datetime
from typing import AsyncIterable, AsyncIterator, List, Optional

from .config import SCRAPER_CONFIG, VALIDATION_RULES
from .departures import DeparturesProvider, HafasError
from .models import Position, Reachable, Station, StationReachables
from .parallel import pool
from .stations import CountryLookup

logger = logging.getLogger(__name__)


def _to_station(stop, countries: CountryLookup) -> Station:
    location = stop.location
    if location is None or location.latitude is None or location.longitude is None:
        return Station(id=stop.id, name=stop.name, country=countries.for_station(stop.id))

    return Station(
        id=stop.id,
        name=stop.name,
        position=Position(lat=location.latitude, long=location.longitude),
        country=countries.for_station(stop.id, location.longitude, location.latitude),
    )


async def compute_reachables(
    provider: DeparturesProvider,
    station_id: str,
    when: datetime,
    countries: CountryLookup,
    max_duration: float = VALIDATION_RULES['max_connection_duration'],
) -> Optional[List[Reachable]]:
    """
    Reachable stations from one day of rail departures at station_id.

    Returns None when the provider had no answer for the station, so the caller
    leaves it pending for a later run. Only the first stop after the origin on a
    trip counts as a direct connection.
    """
    try:
        departures = await provider.fetch(station_id, when)
    except HafasError as e:
        logger.warning("Hafas error for %s on %s: %s", station_id, when.date(), e)
        return None

    min_duration = VALIDATION_RULES['min_connection_duration']
    reachables = []

    for departure in departures:
        if not departure.is_rail:
            continue

        passed_origin = False
        kept = 0

        for stopover in departure.next_stopovers:
            if not passed_origin:
                if stopover.stop.id == station_id:
                    passed_origin = True
                continue

            # Ring lines pass the origin again
            if stopover.stop.id == station_id:
                continue

            if stopover.arrival is None:
                logger.warning(
                    "Missing arrival at %s on trip %s (station %s)",
                    stopover.stop.id, departure.trip_id, station_id,
                )
                continue

            duration = (stopover.arrival - departure.when).total_seconds() / 60

            if duration <= min_duration or duration > max_duration:
                logger.warning(
                    "Unexpected duration %s to %s on trip %s (station %s)",
                    duration, stopover.stop.id, departure.trip_id, station_id,
                )
                continue

            reachables.append(Reachable(
                station=_to_station(stopover.stop, countries),
                duration=duration,
                direct=kept == 0,
                line=departure.line.id,
            ))
            kept += 1

    return reachables


async def stream_reachable_stations(
    stations: AsyncIterable[Station],
    day: int,
    when: datetime,
    provider: DeparturesProvider,
    countries: CountryLookup,
    parallel: int = SCRAPER_CONFIG['concurrency'],
) -> AsyncIterator[StationReachables]:
    """Reachables for every station on one day, in completion order"""
    fetched = 0

    async def process(station: Station) -> StationReachables:
        nonlocal fetched
        fetched += 1
        if fetched % 100 == 0:
            logger.info("Stations fetched %d (day %d)", fetched, day)

        reachables = await compute_reachables(provider, station.id, when, countries)
        return StationReachables(station=station, reachables=reachables)

    results = pool(stations, process, parallel)
    try:
        async for result in results:
            yield result
    finally:
        await results.aclose()
