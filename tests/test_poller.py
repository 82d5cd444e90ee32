import pytest

from hcloudcli.core.errors import MissingIdentifier, PollTimeout
from hcloudcli.core.poller import await_action, poll_until


class _Probe:
    """Returns None until call number `ready_on`, then a value."""

    def __init__(self, ready_on=None, value="done"):
        self.ready_on = ready_on
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.ready_on is not None and self.calls >= self.ready_on:
            return self.value
        return None


class _Sleeps(list):
    def __call__(self, seconds):
        self.append(seconds)


def test_first_truthy_result_wins():
    probe, sleeps = _Probe(ready_on=3), _Sleeps()
    assert poll_until(5, 2.0, probe, sleep=sleeps) == "done"
    assert probe.calls == 3
    # delay only between attempts: (k - 1) * d
    assert sleeps == [2.0, 2.0]


def test_immediate_success_does_not_sleep():
    probe, sleeps = _Probe(ready_on=1), _Sleeps()
    assert poll_until(5, 1.0, probe, sleep=sleeps) == "done"
    assert sleeps == []


def test_timeout_after_exactly_n_probes():
    probe, sleeps = _Probe(), _Sleeps()
    with pytest.raises(PollTimeout) as ei:
        poll_until(4, 0.5, probe, sleep=sleeps)
    assert probe.calls == 4
    assert ei.value.attempts == 4
    # no sleep after the final check
    assert len(sleeps) == 3


@pytest.mark.parametrize("budget", [0, -2])
def test_zero_attempts_never_probes(budget):
    calls, sleeps = [], _Sleeps()
    with pytest.raises(PollTimeout) as ei:
        poll_until(budget, 1.0, lambda: calls.append(1) or "ok", sleep=sleeps)
    assert calls == []
    assert sleeps == []
    assert ei.value.attempts == 0


def test_success_on_last_attempt():
    probe, sleeps = _Probe(ready_on=3), _Sleeps()
    assert poll_until(3, 0.1, probe, sleep=sleeps) == "done"
    assert probe.calls == 3


def test_probe_errors_propagate():
    def probe():
        raise MissingIdentifier("action", 0)

    with pytest.raises(MissingIdentifier):
        poll_until(3, 0, probe, sleep=_Sleeps())


class _ActionClient:
    """Stub client whose action goes running -> running -> success."""

    def __init__(self, statuses):
        self.statuses = list(statuses)
        self.calls = []

    def get_resource(self, family, resource_id, filters=None):
        self.calls.append((family, resource_id))
        status = self.statuses[min(len(self.calls), len(self.statuses)) - 1]
        return {"id": resource_id, "command": "start_server", "status": status}


def test_await_action_returns_after_three_polls():
    client, sleeps = _ActionClient(["running", "running", "success"]), _Sleeps()
    action = await_action(client, 11, max_wait_sec=10, sleep=sleeps)
    assert action["status"] == "success"
    assert client.calls == [("action", 11)] * 3
    assert sleeps == [1.0, 1.0]


def test_await_action_returns_error_state_too():
    client = _ActionClient(["running", "error"])
    action = await_action(client, 5, max_wait_sec=10, sleep=_Sleeps())
    assert action["status"] == "error"
    assert len(client.calls) == 2


def test_await_action_times_out():
    client = _ActionClient(["running"])
    with pytest.raises(PollTimeout) as ei:
        await_action(client, 5, max_wait_sec=3, interval_sec=0.5, sleep=_Sleeps())
    assert ei.value.attempts == 6
    assert len(client.calls) == 6
