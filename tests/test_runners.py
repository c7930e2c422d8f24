"""
Tests for the organization runners poller.
"""

import pytest

from actions_exporter.exceptions import GitHubAPIError
from actions_exporter.models import Page
from actions_exporter.polling.runners import (
    RUNNER_ACTIVE,
    RUNNER_IDLE,
    RUNNER_OFFLINE,
    RUNNER_UNKNOWN,
    OrganizationRunnersPoller,
    runner_label_tuple,
    runner_status_to_code,
)


class StopPolling(BaseException):
    """Escapes the poller loop, which only catches Exception."""


def _poller(client, fetcher, sink, organizations=("acme",), sleep=None):
    kwargs = {"sleep": sleep} if sleep else {}
    return OrganizationRunnersPoller(
        client,
        fetcher,
        organizations=list(organizations),
        sink=sink,
        interval_seconds=30,
        **kwargs,
    )


class TestRunnerStatusToCode:
    def test_offline(self, make_runner):
        assert runner_status_to_code(make_runner(status="offline")) == RUNNER_OFFLINE

    def test_offline_ignores_busy_flag(self, make_runner):
        runner = make_runner(status="offline", busy=True)
        assert runner_status_to_code(runner) == RUNNER_OFFLINE

    def test_online_idle(self, make_runner):
        runner = make_runner(status="online", busy=False)
        assert runner_status_to_code(runner) == RUNNER_IDLE

    def test_online_busy(self, make_runner):
        runner = make_runner(status="online", busy=True)
        assert runner_status_to_code(runner) == RUNNER_ACTIVE

    @pytest.mark.parametrize("status", ["", "ONLINE", "idle", "busy", "maintenance"])
    def test_unknown_status_maps_to_sentinel(self, make_runner, status):
        assert runner_status_to_code(make_runner(status=status)) == RUNNER_UNKNOWN


class TestRunnerLabelTuple:
    def test_label_order(self, make_runner):
        runner = make_runner(
            id=42,
            name="gpu-1",
            os="linux",
            labels=[{"name": "self-hosted"}, {"name": "gpu"}, {"name": "x64"}],
        )

        assert runner_label_tuple("acme", runner) == (
            "acme",
            "linux",
            "gpu-1",
            "42",
            "self-hosted,gpu,x64",
        )

    def test_runner_without_labels(self, make_runner):
        runner = make_runner(labels=[])
        assert runner_label_tuple("acme", runner)[-1] == ""


class TestOrganizationRunnersPoller:
    @pytest.mark.asyncio
    async def test_acme_scenario(self, mock_github_client, fetcher, fake_gauge, make_runner):
        r1 = make_runner(id=1, name="r1", os="linux", status="online", busy=False)
        r2 = make_runner(id=2, name="r2", os="linux", status="offline")
        mock_github_client.list_organization_runners.side_effect = (
            lambda org, **kw: Page(items=[r1, r2])
        )
        sink = fake_gauge()

        await _poller(mock_github_client, fetcher, sink).poll_once()

        assert sink.values == {
            runner_label_tuple("acme", r1): 1,
            runner_label_tuple("acme", r2): 0,
        }

    @pytest.mark.asyncio
    async def test_no_organizations_makes_no_calls(
        self, mock_github_client, fetcher, fake_gauge
    ):
        sink = fake_gauge()
        sink.set(("stale", "linux", "old", "1", ""), 1)

        await _poller(mock_github_client, fetcher, sink, organizations=()).poll_once()

        assert sink.values == {}
        assert sink.reset_count == 1
        mock_github_client.list_organization_runners.assert_not_called()

    @pytest.mark.asyncio
    async def test_removed_runner_disappears(
        self, mock_github_client, fetcher, fake_gauge, make_runner
    ):
        r1 = make_runner(id=1, name="r1")
        r2 = make_runner(id=2, name="r2")
        responses = [Page(items=[r1, r2]), Page(items=[r1])]
        mock_github_client.list_organization_runners.side_effect = (
            lambda org, **kw: responses.pop(0)
        )
        sink = fake_gauge()
        poller = _poller(mock_github_client, fetcher, sink)

        await poller.poll_once()
        await poller.poll_once()

        assert list(sink.values) == [runner_label_tuple("acme", r1)]
        assert sink.reset_count == 2

    @pytest.mark.asyncio
    async def test_fetch_failure_empties_the_gauge(
        self, mock_github_client, fetcher, fake_gauge, make_runner
    ):
        runner = make_runner()
        calls = {"count": 0}

        def list_runners(org, **kw):
            calls["count"] += 1
            if calls["count"] > 1:
                raise GitHubAPIError("server error", status_code=500)
            return Page(items=[runner])

        mock_github_client.list_organization_runners.side_effect = list_runners
        sink = fake_gauge()
        poller = _poller(mock_github_client, fetcher, sink)

        await poller.poll_once()
        assert len(sink.values) == 1
        await poller.poll_once()

        assert sink.values == {}

    @pytest.mark.asyncio
    async def test_failing_organization_does_not_hide_others(
        self, mock_github_client, fetcher, fake_gauge, make_runner
    ):
        runner = make_runner(id=7, name="ok")

        def list_runners(org, **kw):
            if org == "broken":
                raise GitHubAPIError("not found", status_code=404)
            return Page(items=[runner])

        mock_github_client.list_organization_runners.side_effect = list_runners
        sink = fake_gauge()

        await _poller(
            mock_github_client, fetcher, sink, organizations=("broken", "acme")
        ).poll_once()

        assert sink.values == {runner_label_tuple("acme", runner): 1}

    @pytest.mark.asyncio
    async def test_unchanged_upstream_keeps_same_series(
        self, mock_github_client, fetcher, fake_gauge, make_runner
    ):
        runners = [make_runner(id=i, name=f"r{i}") for i in range(1, 4)]
        mock_github_client.list_organization_runners.side_effect = (
            lambda org, **kw: Page(items=runners)
        )
        sink = fake_gauge()
        poller = _poller(mock_github_client, fetcher, sink)

        await poller.poll_once()
        first = dict(sink.values)
        await poller.poll_once()

        assert sink.values == first
        assert len(first) == 3

    @pytest.mark.asyncio
    async def test_run_forever_survives_cycle_errors(
        self, mock_github_client, fetcher, fake_gauge
    ):
        mock_github_client.list_organization_runners.side_effect = RuntimeError("bug")
        sleeps: list[float] = []

        async def stop_after_two(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) == 2:
                raise StopPolling

        poller = _poller(mock_github_client, fetcher, fake_gauge(), sleep=stop_after_two)

        with pytest.raises(StopPolling):
            await poller.run_forever()

        assert sleeps == [30, 30]
        assert mock_github_client.list_organization_runners.call_count == 2
