"""Tests for the remote classification bridge."""

import asyncio
from unittest.mock import patch

import pytest

from firewatch.classifier import ClassifierClient, parse_label
from firewatch.exceptions import ClassifierError
from firewatch.models import AlertLevel, AlertSource, AlertState, SensorReading


def _local(level: AlertLevel) -> AlertState:
    return AlertState(level=level, source=AlertSource.LOCAL_THRESHOLD)


async def _ready_with_history(node, count: int = 3):
    await node.connectivity.ensure_connectivity()
    for _ in range(count):
        await node.telemetry.publish(
            SensorReading(temperature=25.0, humidity=40.0, gas_level=200, flame_detected=False)
        )


def test_parse_label():
    assert parse_label({"label": "danger"}) == AlertLevel.DANGER
    assert parse_label({"label": " SAFE "}) == AlertLevel.SAFE

    for bad in ({"label": "maybe"}, {}, None, ["danger"]):
        with pytest.raises(ClassifierError):
            parse_label(bad)


@pytest.mark.asyncio
async def test_local_danger_stays_danger(node):
    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.SAFE)

    state = await node.bridge.reconcile(_local(AlertLevel.DANGER))
    assert state.level == AlertLevel.DANGER
    assert state.source == AlertSource.RECONCILED


@pytest.mark.asyncio
async def test_remote_danger_escalates_local_safe(node):
    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.DANGER)

    state = await node.bridge.reconcile(_local(AlertLevel.SAFE))
    assert state.level == AlertLevel.DANGER
    assert node.bridge.last_remote.source == AlertSource.REMOTE_CLASSIFIER


@pytest.mark.asyncio
async def test_both_safe_is_safe(node):
    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.SAFE)

    state = await node.bridge.reconcile(_local(AlertLevel.SAFE))
    assert state.level == AlertLevel.SAFE
    # The window sent to the classifier is the pushed history
    assert len(node.classifier.last_window) == 3


@pytest.mark.asyncio
async def test_window_size_limits_history(node):
    await _ready_with_history(node, count=8)
    await node.bridge.reconcile(_local(AlertLevel.SAFE))
    assert len(node.classifier.last_window) == 5


@pytest.mark.asyncio
async def test_falls_back_when_cloud_not_ready(node):
    node.classifier.simulate_verdict(AlertLevel.DANGER)

    state = await node.bridge.reconcile(_local(AlertLevel.SAFE))
    assert state.level == AlertLevel.SAFE
    assert node.classifier.calls == 0


@pytest.mark.asyncio
async def test_falls_back_on_classifier_error(node):
    await _ready_with_history(node)
    node.classifier.simulate_error(True)

    assert (await node.bridge.reconcile(_local(AlertLevel.SAFE))).level == AlertLevel.SAFE
    assert (await node.bridge.reconcile(_local(AlertLevel.DANGER))).level == AlertLevel.DANGER


@pytest.mark.asyncio
async def test_falls_back_on_fetch_error(node):
    await _ready_with_history(node)
    node.cloud.simulate_error(True)
    node.classifier.simulate_verdict(AlertLevel.DANGER)

    assert (await node.bridge.reconcile(_local(AlertLevel.SAFE))).level == AlertLevel.SAFE


@pytest.mark.asyncio
async def test_falls_back_on_empty_window(node):
    await node.connectivity.ensure_connectivity()
    node.classifier.simulate_verdict(AlertLevel.DANGER)

    assert (await node.bridge.reconcile(_local(AlertLevel.SAFE))).level == AlertLevel.SAFE
    assert node.classifier.calls == 0


@pytest.mark.asyncio
async def test_run_once_uses_slots(node):
    assert await node.bridge.run_once() is None
    assert node.remote_slot.get() is None

    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.DANGER)
    node.local_slot.put(_local(AlertLevel.SAFE))

    state = await node.bridge.run_once()
    assert state.level == AlertLevel.DANGER
    assert state.source == AlertSource.RECONCILED

    # The cycle gets the classifier verdict itself, not the reconciled one
    remote = node.remote_slot.get()
    assert remote == node.bridge.last_remote
    assert remote.source == AlertSource.REMOTE_CLASSIFIER


@pytest.mark.asyncio
async def test_published_verdict_does_not_carry_local_danger(node):
    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.SAFE)
    node.local_slot.put(_local(AlertLevel.DANGER))

    state = await node.bridge.run_once()
    assert state.level == AlertLevel.DANGER
    assert node.remote_slot.get().level == AlertLevel.SAFE


@pytest.mark.asyncio
async def test_unavailable_classifier_clears_published_verdict(node):
    await _ready_with_history(node)
    node.classifier.simulate_verdict(AlertLevel.DANGER)
    node.local_slot.put(_local(AlertLevel.SAFE))
    await node.bridge.run_once()
    assert node.remote_slot.get().level == AlertLevel.DANGER

    node.classifier.simulate_error(True)
    state = await node.bridge.run_once()

    assert state.level == AlertLevel.SAFE
    assert node.remote_slot.get() is None


@pytest.mark.asyncio
async def test_run_stops_on_signal(node):
    await _ready_with_history(node)
    node.local_slot.put(_local(AlertLevel.SAFE))
    stop_event = asyncio.Event()

    task = asyncio.create_task(node.bridge.run(stop_event))
    await asyncio.sleep(0.05)
    stop_event.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert node.remote_slot.version >= 1


@pytest.mark.asyncio
async def test_client_classify(http_session, safe_reading):
    client = ClassifierClient("http://classifier:8200/")
    session = http_session(200, {"label": "danger"})

    with patch.object(client, "_get_session", return_value=session):
        assert await client.classify([safe_reading]) == AlertLevel.DANGER

    url = session.post.call_args.args[0]
    payload = session.post.call_args.kwargs["json"]
    assert url == "http://classifier:8200/classify"
    assert payload["readings"][0]["gas"] == 200


@pytest.mark.asyncio
async def test_client_http_error(http_session, safe_reading):
    client = ClassifierClient()
    with patch.object(client, "_get_session", return_value=http_session(503, {})):
        with pytest.raises(ClassifierError):
            await client.classify([safe_reading])
