import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from rail_reach.departures import HafasError, HafasRestProvider

from .conftest import make_departure

WHEN = datetime(2024, 5, 1, tzinfo=timezone.utc)
BASE_URL = 'https://hafas.test'


def _provider(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault('disable_cache', True)
    return HafasRestProvider(base_url=BASE_URL, client=client, retry_delay=0, **kwargs)


def _fetch(provider, station_id='8000105'):
    async def go():
        try:
            return await provider.fetch(station_id, WHEN)
        finally:
            await provider._client.aclose()

    return asyncio.run(go())


def _good_record():
    return make_departure('8000105', '2024-05-01T10:00:00+02:00', [
        ('8000105', None),
        ('8000068', '2024-05-01T10:15:00+02:00'),
    ])


def test_fetch_parses_departures_and_skips_invalid_records():
    requests = []

    def handler(request):
        requests.append(request)
        broken = _good_record()
        broken['when'] = None
        return httpx.Response(200, json={'departures': [_good_record(), broken]})

    departures = _fetch(_provider(handler))

    assert len(departures) == 1
    assert departures[0].trip_id == 'trip-1'
    assert departures[0].next_stopovers[1].stop.id == '8000068'
    assert requests[0].url.path == '/stops/8000105/departures'
    params = requests[0].url.params
    assert params['duration'] == '1440'
    assert params['stopovers'] == 'true'
    assert params['bus'] == 'false'
    assert params['nationalExpress'] == 'true'


def test_fetch_accepts_plain_list_payload():
    departures = _fetch(_provider(lambda request: httpx.Response(200, json=[_good_record()])))

    assert len(departures) == 1


def test_only_local_lines_disables_long_distance_products():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=[])

    _fetch(_provider(handler, only_local_lines=True))

    params = requests[0].url.params
    assert params['nationalExpress'] == 'false'
    assert params['national'] == 'false'
    assert params['regional'] == 'true'


def test_hafas_error_is_raised_without_retry():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(502, json={'isHafasError': True, 'code': 'SERVER_ERROR', 'message': 'HCI Service'})

    with pytest.raises(HafasError) as info:
        _fetch(_provider(handler, retry_attempts=3))

    assert info.value.code == 'SERVER_ERROR'
    assert len(requests) == 1


def test_server_errors_are_retried_then_reported_as_hafas_error():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(503, text='unavailable')

    with pytest.raises(HafasError):
        _fetch(_provider(handler, retry_attempts=2))

    assert len(requests) == 2


def test_transport_errors_are_reported_as_hafas_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(HafasError):
        _fetch(_provider(handler, retry_attempts=1))


def test_other_client_errors_propagate():
    def handler(request):
        return httpx.Response(400, json={'message': 'bad request'})

    with pytest.raises(httpx.HTTPStatusError):
        _fetch(_provider(handler))


def test_responses_are_cached_on_disk(tmp_path):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=[_good_record()])

    provider = _provider(handler, disable_cache=False, cache_dir=str(tmp_path))

    async def go():
        try:
            first = await provider.fetch('8000105', WHEN)
            second = await provider.fetch('8000105', WHEN)
            return first, second
        finally:
            await provider._client.aclose()

    first, second = asyncio.run(go())

    assert first == second
    assert len(requests) == 1
    assert list((tmp_path / 'station-departures').iterdir())
