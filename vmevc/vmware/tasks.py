# -*- coding: utf-8 -*-
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pyVmomi import vim

from ..core.cancel import CancelToken
from ..core.exceptions import fault_text, wrap_vmware


class TaskState(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TaskOutcome:
    state: TaskState
    reason: Optional[str] = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.state is TaskState.SUCCEEDED


class TaskWaiter:
    """
    Blocks on a vim.Task until it is terminal or the cancel token fires.

    Polls task.info with capped exponential backoff. The sleep between polls
    is CancelToken.wait(), so a cancel ends the wait without another poll.
    Cancelling only stops waiting; the server task is left running.
    """

    def __init__(
        self,
        logger: logging.Logger,
        *,
        poll_interval: float = 0.5,
        max_interval: float = 5.0,
        backoff: float = 1.5,
    ):
        self.logger = logger
        self.poll_interval = poll_interval
        self.max_interval = max_interval
        self.backoff = backoff

    def _info(self, task: Any) -> Any:
        try:
            return task.info
        except Exception as e:
            raise wrap_vmware(f"Failed to read task state: {fault_text(e)}", e)

    def wait(
        self,
        task: Any,
        cancel: CancelToken,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> TaskOutcome:
        interval = self.poll_interval
        last_progress: Optional[int] = None
        while True:
            info = self._info(task)
            state = info.state
            if state == vim.TaskInfo.State.success:
                self.logger.debug("Task %s succeeded", getattr(info, "key", task))
                if on_progress is not None:
                    on_progress(100)
                return TaskOutcome(TaskState.SUCCEEDED, result=getattr(info, "result", None))
            if state == vim.TaskInfo.State.error:
                reason = fault_text(getattr(info, "error", None)) or "task failed without error detail"
                self.logger.debug("Task %s failed: %s", getattr(info, "key", task), reason)
                return TaskOutcome(TaskState.FAILED, reason=reason)

            progress = getattr(info, "progress", None)
            if on_progress is not None and isinstance(progress, int) and progress != last_progress:
                on_progress(progress)
                last_progress = progress

            if cancel.wait(interval):
                return TaskOutcome(TaskState.CANCELLED, reason=cancel.reason)
            interval = min(self.max_interval, interval * self.backoff)
