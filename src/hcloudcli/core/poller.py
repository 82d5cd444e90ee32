"""
Bounded polling: retry a probe until it yields a result or attempts run out.

    poll_until(10, 1.0, probe)       # probe() -> falsy means "not yet"
    await_action(client, action_id)  # poll GET actions/<id> until not running

The first truthy probe result wins and is returned immediately. The delay is
only applied between attempts, so a probe that succeeds on attempt ``k``
returns after ``(k - 1) * delay`` seconds of sleeping.
"""

from __future__ import annotations

import math
import time
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, TypeVar

from .errors import PollTimeout
from .logging_setup import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .hcloud_client import HcloudClient

log = get_logger(__name__)

T = TypeVar("T")

RUNNING = "running"


def poll_until(
    max_attempts: int,
    delay_sec: float,
    probe: Callable[[], Optional[T]],
    *,
    sleep: Callable[[float], Any] = time.sleep,
    what: str = "condition",
) -> T:
    """
    Call `probe` up to `max_attempts` times, sleeping `delay_sec` in between.

    Returns the first truthy probe result.
    Raises PollTimeout after exactly `max_attempts` falsy results
    (immediately, without probing, when `max_attempts` <= 0).
    """
    attempts = max(0, int(max_attempts))
    last: Optional[T] = None
    for attempt in range(1, attempts + 1):
        last = probe()
        if last:
            log.debug("poll: %s satisfied on attempt %d/%d", what, attempt, attempts)
            return last
        if attempt < attempts:
            sleep(float(delay_sec))
    log.error("poll: timeout waiting for %s after %d attempts", what, attempts)
    raise PollTimeout(attempts, last, what)


def await_action(
    client: "HcloudClient",
    action_id: Any,
    max_wait_sec: float = 30,
    *,
    interval_sec: float = 1.0,
    sleep: Callable[[float], Any] = time.sleep,
) -> Dict[str, Any]:
    """
    Poll the action until its status is no longer "running".

    Returns the final action (status "success" or "error"; callers inspect it).
    Raises PollTimeout when the action is still running after `max_wait_sec`.
    """
    if interval_sec > 0:
        attempts = max(1, math.ceil(float(max_wait_sec) / float(interval_sec)))
    else:
        attempts = max(1, int(max_wait_sec))

    def probe() -> Optional[Dict[str, Any]]:
        action = client.get_resource("action", action_id)
        if action.get("status") == RUNNING:
            log.debug("action %s still running (progress=%s)", action_id, action.get("progress"))
            return None
        return action

    action = poll_until(attempts, interval_sec, probe, sleep=sleep, what=f"action {action_id}")
    if action.get("status") != "success":
        log.warning("action %s finished with status=%s error=%s",
                    action_id, action.get("status"), action.get("error"))
    return action
