"""
Tests for score alerting and alert sinks.
"""

import pytest

from resilience_testing import (
    LoggingAlertSink,
    ResilienceScorer,
    ScoreAlertMonitor,
    WebhookAlertSink,
)


class FakeResponse:
    def __init__(self, status, body=""):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession.post."""

    def __init__(self, status=200, error=None):
        self.status = status
        self.error = error
        self.posts = []

    def post(self, url, json=None):
        if self.error is not None:
            raise self.error
        self.posts.append((url, json))
        return FakeResponse(self.status, "nope")


@pytest.fixture
def low_score():
    return ResilienceScorer().score(0.5, 3.0, 0.5)


@pytest.fixture
def high_score():
    return ResilienceScorer().score(1.0, 0.0, 1.0)


class TestScoreAlertMonitor:

    @pytest.mark.asyncio
    async def test_no_alert_at_or_above_threshold(self, high_score):
        sink = LoggingAlertSink()
        monitor = ScoreAlertMonitor(threshold=70, hooks=[sink])

        assert await monitor.evaluate(high_score) is None
        assert sink.delivered == []

    @pytest.mark.asyncio
    async def test_alert_below_threshold(self, low_score):
        sink = LoggingAlertSink()
        monitor = ScoreAlertMonitor(threshold=70, hooks=[sink])

        alert = await monitor.evaluate(low_score, context={"worst_component": "Cache"})

        assert alert is not None
        assert alert.score == low_score.score
        assert alert.details["worst_component"] == "Cache"
        assert sink.delivered == [alert]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_stop_others(self, low_score):
        delivered = []

        def broken(alert):
            raise RuntimeError("boom")

        async def async_hook(alert):
            delivered.append(alert)

        monitor = ScoreAlertMonitor(threshold=70, hooks=[broken])
        monitor.add_hook(async_hook)

        alert = await monitor.evaluate(low_score)

        assert delivered == [alert]


class TestWebhookAlertSink:

    @pytest.mark.asyncio
    async def test_posts_payload(self, low_score):
        session = FakeSession(status=200)
        sink = WebhookAlertSink("https://hooks.example/alert", session=session)
        alert = await ScoreAlertMonitor(threshold=70).evaluate(low_score)

        assert await sink.send(alert) is True

        url, payload = session.posts[0]
        assert url == "https://hooks.example/alert"
        assert payload["alert"]["score"] == low_score.score
        assert payload["text"].startswith(":rotating_light:")

    @pytest.mark.asyncio
    async def test_rejected_by_webhook(self, low_score):
        sink = WebhookAlertSink("https://hooks.example/alert", session=FakeSession(status=500))
        alert = await ScoreAlertMonitor(threshold=70).evaluate(low_score)
        assert await sink(alert) is False

    @pytest.mark.asyncio
    async def test_transport_error_is_swallowed(self, low_score):
        sink = WebhookAlertSink(
            "https://hooks.example/alert",
            session=FakeSession(error=ConnectionError("down")),
        )
        alert = await ScoreAlertMonitor(threshold=70).evaluate(low_score)
        assert await sink.send(alert) is False

    @pytest.mark.asyncio
    async def test_close_leaves_shared_session(self, low_score):
        session = FakeSession()
        sink = WebhookAlertSink("https://hooks.example/alert", session=session)
        await sink.close()
        assert sink._session is session

    @pytest.mark.asyncio
    async def test_as_monitor_hook(self, low_score):
        session = FakeSession(status=204)
        monitor = ScoreAlertMonitor(
            threshold=70,
            hooks=[WebhookAlertSink("https://hooks.example/alert", session=session)],
        )
        await monitor.evaluate(low_score)
        assert len(session.posts) == 1
