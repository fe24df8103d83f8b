from __future__ import annotations

import asyncio

import pytest
from fastapi import HTTPException

from scanport import api
from scanport.log_stream import LogStream
from scanport.probe import ProbeError


def test_health() -> None:
    data = asyncio.run(api.health())
    assert data['status'] == 'ok'


def test_log_stream_replays_scan_history_in_order(monkeypatch) -> None:
    outcomes = iter([ProbeError('poll: Invalid argument'), ['10.60.4.7']])

    def fake_scan(request):
        result = next(outcomes)
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(api, 'log_stream', LogStream())
    monkeypatch.setattr(api, 'scan', fake_scan)

    async def runner() -> list[dict[str, str]]:
        with pytest.raises(HTTPException):
            await api.scan_subnets(api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/24']))
        await api.scan_subnets(api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.4.0/24']))
        agen = api.log_stream.subscribe(replay=True)
        events = [await agen.__anext__() for _ in range(4)]
        await agen.aclose()
        return events

    events = asyncio.run(runner())
    assert [(event['level'], event['message']) for event in events] == [
        ('info', 'Scan of port 80 started on 10.60.3.0/24'),
        ('error', 'Scan of 10.60.3.0/24 failed: poll: Invalid argument'),
        ('info', 'Scan of port 80 started on 10.60.4.0/24'),
        ('info', 'Scan of 10.60.4.0/24 complete: 1 hosts accept port 80'),
    ]


def test_log_stream_replays_backlog() -> None:
    stream = LogStream(backlog=2)

    async def runner() -> list[str]:
        for n in range(3):
            await stream.publish(f'event {n}')
        agen = stream.subscribe(replay=True)
        first = await agen.__anext__()
        second = await agen.__anext__()
        await agen.aclose()
        return [first['message'], second['message']]

    assert asyncio.run(runner()) == ['event 1', 'event 2']
    assert [event['message'] for event in stream.recent()] == ['event 1', 'event 2']


def test_scan_endpoint(monkeypatch) -> None:
    captured = {}

    def fake_scan(request):
        captured['request'] = request
        return ['10.60.3.5', '10.60.3.200']

    monkeypatch.setattr(api, 'scan', fake_scan)

    payload = api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/24'])
    response = asyncio.run(api.scan_subnets(payload))

    assert response.hosts == ['10.60.3.5', '10.60.3.200']
    assert response.scanned == 254
    assert captured['request'].subnets == ('10.60.3.',)
    events = asyncio.run(api.recent_events())['events']
    assert events[-1]['message'] == 'Scan of 10.60.3.0/24 complete: 2 hosts accept port 80'


def test_scan_endpoint_rejects_bad_subnet(monkeypatch) -> None:
    monkeypatch.setattr(api, 'scan', lambda request: pytest.fail('scan should not run'))
    payload = api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/16'])

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(api.scan_subnets(payload))
    assert excinfo.value.status_code == 400


def test_scan_endpoint_limits_subnets(monkeypatch) -> None:
    monkeypatch.setenv('SCANPORT_MAX_SUBNETS', '1')
    monkeypatch.setattr(api, 'scan', lambda request: pytest.fail('scan should not run'))
    payload = api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/24', '10.60.4.0/24'])

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(api.scan_subnets(payload))
    assert excinfo.value.status_code == 400


def test_scan_endpoint_fatal_error(monkeypatch) -> None:
    def failing_scan(request):
        raise ProbeError('poll: Invalid argument')

    monkeypatch.setattr(api, 'scan', failing_scan)
    payload = api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/24'])

    with pytest.raises(HTTPException) as excinfo:
        asyncio.run(api.scan_subnets(payload))
    assert excinfo.value.status_code == 500
    assert asyncio.run(api.recent_events())['events'][-1]['level'] == 'error'


def test_invalid_subnet_limit_falls_back_to_default(monkeypatch) -> None:
    monkeypatch.setenv('SCANPORT_MAX_SUBNETS', 'sixteen')
    assert api._max_subnets() == api.DEFAULT_MAX_SUBNETS

    monkeypatch.setattr(api, 'scan', lambda request: ['10.60.3.5'])
    payload = api.ScanPayload(timeout=0.5, port=80, subnets=['10.60.3.0/24', '10.60.4.0/24'])
    response = asyncio.run(api.scan_subnets(payload))
    assert response.hosts == ['10.60.3.5']
    assert response.scanned == 508
