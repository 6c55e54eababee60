"""Error signals shared between the actuator and its caller."""

from __future__ import annotations

from datetime import timedelta


class RequeueAfterError(Exception):
    """Non-terminal failure: the caller should retry after `requeue_after`.

    Callers distinguish this from terminal errors with isinstance(), never
    by inspecting the message.
    """

    def __init__(self, requeue_after: timedelta) -> None:
        self.requeue_after = requeue_after
        super().__init__(f"requeue in {requeue_after.total_seconds():g}s")
