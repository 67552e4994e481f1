# liveness.py
# Bounded health-check loop for the dev server inside the sandbox.
#
# ensure_up() never raises. A liveness failure is reported as an outcome so
# the agent loop can still try to recover in conversation.

import time
from typing import Callable

from fragment_agent.models import ProbeOutcome, ProbeStatus

# "The server answered at all", not "the route exists". Dev servers often
# have no handler for "/".
ACCEPTED_STATUS_CODES = frozenset({"200", "404"})


def status_is_up(code: str) -> bool:
    return code.strip() in ACCEPTED_STATUS_CODES


def ensure_up(
    probe: Callable[[], bool],
    bootstrap: Callable[[], None],
    max_polls: int,
    poll_interval: float,
    sleep: Callable[[float], None] = time.sleep,
) -> ProbeOutcome:
    """
    Make sure the target process is serving.

    Probes once; if already up, returns UP without bootstrapping. Otherwise
    bootstraps once, then polls up to `max_polls` times, sleeping
    `poll_interval` seconds between attempts.
    """
    try:
        if probe():
            return ProbeOutcome(status=ProbeStatus.UP)

        bootstrap()

        for attempt in range(max_polls):
            if probe():
                return ProbeOutcome(status=ProbeStatus.STARTED, detail=f"after {attempt + 1} poll(s)")
            if attempt < max_polls - 1:
                sleep(poll_interval)
        return ProbeOutcome(status=ProbeStatus.TIMEOUT, detail=f"no answer after {max_polls} poll(s)")
    except Exception as exc:
        return ProbeOutcome(status=ProbeStatus.ERROR, detail=f"Error: {exc}")
