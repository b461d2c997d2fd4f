"""
Task poller for long-running vendor submissions.

    poll(task_id) -> audio_url

Queries the task status up to ``max_attempts`` times, sleeping
``interval_ms`` between queries:
    - TaskComplete    -> return its audio link
    - TaskInProgress  -> sleep, query again
    - TaskFailed      -> VendorError, no further queries
    - exhausted       -> PollTimeoutError

HTTP failures on a status query propagate as UpstreamError; polling does
not retry them.
"""
from __future__ import annotations

import asyncio

from tts_proxy.core.config import PollingConfig
from tts_proxy.core.errors import PollTimeoutError, VendorError
from tts_proxy.core.logging import get_logger, info, verbose, warn
from tts_proxy.core.metrics import metrics
from tts_proxy.tts.models import TaskComplete, TaskFailed, TaskInProgress
from tts_proxy.tts.upstream import SleepFn, UpstreamClient

_LOG = get_logger("tts-proxy.poller")


class TaskPoller:
    def __init__(self, client: UpstreamClient, config: PollingConfig, sleep: SleepFn = asyncio.sleep):
        self.client = client
        self.config = config
        self._sleep = sleep

    async def poll(self, task_id: str) -> str:
        interval_s = self.config.interval_ms / 1000.0

        for attempt in range(1, self.config.max_attempts + 1):
            status = await self.client.query_task(task_id)

            if isinstance(status, TaskComplete):
                metrics.record_poll("complete")
                info(_LOG, "task_complete", task_id=task_id, attempts=attempt)
                return status.audio_url

            if isinstance(status, TaskFailed):
                metrics.record_poll("failed")
                warn(_LOG, "task_failed", task_id=task_id, attempt=attempt, reason=status.reason)
                raise VendorError(f"Task status query failed: {status.reason}", status.payload)

            assert isinstance(status, TaskInProgress)
            metrics.record_poll("pending")
            verbose(_LOG, "task_pending", task_id=task_id, attempt=attempt)
            if attempt < self.config.max_attempts:
                await self._sleep(interval_s)

        warn(_LOG, "task_timeout", task_id=task_id, attempts=self.config.max_attempts)
        raise PollTimeoutError(task_id, self.config.max_attempts)
