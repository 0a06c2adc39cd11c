"""
Departure boards from a HAFAS REST endpoint (hafas-rest-api, e.g. v6.db.transport.rest)
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .cache import cached_fn
from .config import API_CONFIG, SCRAPER_CONFIG

logger = logging.getLogger(__name__)

DAY_MINUTES = 24 * 60

LONG_DISTANCE_PRODUCTS = ('nationalExpress', 'national')
LOCAL_RAIL_PRODUCTS = ('regionalExpress', 'regional', 'suburban')
EXCLUDED_PRODUCTS = ('bus', 'ferry', 'subway', 'tram', 'taxi')


class HafasError(Exception):
    """The provider could not answer for this station; treated as "no data" """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status


class Location(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class Stop(BaseModel):
    id: str
    name: str
    location: Optional[Location] = None


class Line(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    mode: str
    product: Optional[str] = None


class Stopover(BaseModel):
    stop: Stop
    arrival: Optional[datetime] = None
    departure: Optional[datetime] = None


class Departure(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    trip_id: str = Field(alias='tripId')
    stop: Stop
    when: datetime
    line: Line
    next_stopovers: List[Stopover] = Field(alias='nextStopovers')

    @property
    def is_rail(self) -> bool:
        return self.line.mode == 'train' and (self.line.name or '')[:3].lower() != 'bus'


class DeparturesProvider(Protocol):
    async def fetch(self, station_id: str, when: datetime) -> List[Departure]:
        ...


def parse_departures(records: List[Dict[str, Any]], station_id: str) -> List[Departure]:
    """Validate each record on its own; a malformed one is dropped, not fatal"""
    departures = []
    for record in records:
        try:
            departures.append(Departure.model_validate(record))
        except ValidationError as e:
            logger.warning(
                "Failed to parse departure from %s (trip %s): %s",
                station_id, record.get('tripId') if isinstance(record, dict) else None, e,
            )
    return departures


class HafasRestProvider:
    """Fetches a 24 hour departure board, with stopovers, for one station"""

    def __init__(
        self,
        base_url: str = API_CONFIG['base_url'],
        client_name: str = API_CONFIG['client_name'],
        timeout: float = API_CONFIG['timeout'],
        retry_attempts: int = API_CONFIG['retry_attempts'],
        retry_delay: float = API_CONFIG['retry_delay'],
        only_local_lines: bool = SCRAPER_CONFIG['only_local_lines'],
        cache_dir: str = SCRAPER_CONFIG['cache_dir'],
        disable_cache: bool = SCRAPER_CONFIG['disable_cache'],
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.client_name = client_name
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.only_local_lines = only_local_lines
        self._client = client
        self._owns_client = client is None
        self._fetch_cached = cached_fn(
            'station-departures',
            self.fetch_raw,
            lambda station_id, when: f"departure-{station_id}-{int(when.timestamp() * 1000)}",
            cache_dir=cache_dir,
            disabled=disable_cache,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(max_connections=20, max_keepalive_connections=10)
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                limits=limits,
                headers={'User-Agent': self.client_name},
            )
        return self._client

    def products(self) -> Dict[str, str]:
        products = {name: not self.only_local_lines for name in LONG_DISTANCE_PRODUCTS}
        products.update({name: True for name in LOCAL_RAIL_PRODUCTS})
        products.update({name: False for name in EXCLUDED_PRODUCTS})
        return {name: 'true' if enabled else 'false' for name, enabled in products.items()}

    async def fetch_raw(self, station_id: str, when: datetime) -> List[Dict[str, Any]]:
        client = await self._get_client()
        url = f"{self.base_url}/stops/{station_id}/departures"
        params = {
            'when': when.isoformat(),
            'duration': str(DAY_MINUTES),
            'stopovers': 'true',
            'remarks': 'false',
            **self.products(),
        }

        last_error: Optional[HafasError] = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                response = await client.get(url, params=params)
            except httpx.TransportError as e:
                last_error = HafasError(f"Request for {station_id} failed: {e!r}")
            else:
                body = _json_or_none(response)

                if isinstance(body, dict) and body.get('isHafasError') is True:
                    raise HafasError(
                        body.get('message') or f"HAFAS error for {station_id}",
                        code=body.get('code'),
                        status=response.status_code,
                    )

                if response.status_code == 429 or response.status_code >= 500:
                    last_error = HafasError(
                        f"Provider answered {response.status_code} for {station_id}",
                        status=response.status_code,
                    )
                else:
                    response.raise_for_status()
                    departures = body.get('departures') if isinstance(body, dict) else body
                    if not isinstance(departures, list):
                        raise ValueError(f"Unexpected departures payload for {station_id}")
                    return departures

            if attempt < self.retry_attempts:
                logger.info(
                    "Retrying %s in %ss (attempt %d/%d): %s",
                    station_id, self.retry_delay, attempt, self.retry_attempts, last_error,
                )
                await asyncio.sleep(self.retry_delay)

        raise last_error

    async def fetch(self, station_id: str, when: datetime) -> List[Departure]:
        logger.debug("Fetching for station %s and day %s", station_id, when)
        records = await self._fetch_cached(station_id, when)
        logger.debug("Fetched for station %s and day %s", station_id, when)
        return parse_departures(records, station_id)

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None
