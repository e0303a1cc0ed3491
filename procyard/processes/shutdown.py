"""Grace-period shutdown across process groups.

SIGTERM everything, give the groups ``grace`` seconds, SIGKILL whatever is
left. The call returns only once every group is gone or has been killed.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from typing import Sequence

from procyard.processes.groups import Killable

_logger = logging.getLogger(__name__)

# Upper bound on how long SIGKILLed groups get to disappear
_KILL_SETTLE_SECONDS = 2.0


async def terminate_groups(
    groups: Sequence[Killable],
    grace: float,
    poll_interval: float = 0.05,
) -> list[str]:
    """Terminate ``groups``; return the labels that needed SIGKILL."""
    remaining = [g for g in groups if g.send(signal.SIGTERM)]
    if not remaining:
        return []

    deadline = time.monotonic() + max(grace, 0.0)
    while remaining and time.monotonic() < deadline:
        await asyncio.sleep(min(poll_interval, max(deadline - time.monotonic(), 0.0)))
        remaining = [g for g in remaining if g.alive()]

    killed: list[str] = []
    for group in remaining:
        if group.send(signal.SIGKILL):
            _logger.info("Escalated SIGKILL to %s", group.label)
            killed.append(group.label)

    settle = time.monotonic() + _KILL_SETTLE_SECONDS
    pending = [g for g in remaining if g.alive()]
    while pending and time.monotonic() < settle:
        await asyncio.sleep(poll_interval)
        pending = [g for g in pending if g.alive()]
    if pending:
        _logger.warning(
            "Groups still present after SIGKILL: %s",
            ", ".join(g.label for g in pending),
        )
    return killed
