"""Poll asynchronous hypervisor tasks until they reach a terminal state."""

from __future__ import annotations

from dataclasses import dataclass
from time import monotonic, sleep
from urllib.parse import quote

from loguru import logger

from .auth import AuthSession
from .client import HypervisorClient
from .errors import HypervisorAPIError, TaskFailedError, TaskTimeoutError
from .responses import TaskStatus

log = logger

OK_EXIT_STATUS = 'OK'


@dataclass(frozen=True)
class TaskHandle:
    upid: str
    node: str

    @property
    def status_path(self) -> str:
        return f'/nodes/{self.node}/tasks/{quote(self.upid, safe="")}/status'


@dataclass(frozen=True)
class TaskResult:
    success: bool
    exit_status: str
    poll_count: int


def wait_for_task(
    client: HypervisorClient,
    handle: TaskHandle,
    session: AuthSession,
    *,
    poll_interval_s: float = 1,
    timeout_s: float = 600,
) -> TaskResult:
    """Block until the task stops, returning its exit status.

    Success means an exit status of exactly ``"OK"``. A non-2xx status
    response is fatal. ``timeout_s=0`` waits forever.
    """
    deadline = monotonic() + timeout_s if timeout_s else None
    poll_count = 0
    while True:
        poll_count += 1
        resp = client.call('GET', handle.status_path, session)
        if not resp.ok:
            raise HypervisorAPIError(
                'Task status check failed', resp.status_code, resp.text
            )
        status = TaskStatus.from_response(resp)
        if status.terminal:
            log.debug(
                'Task {} finished exit={} polls={}',
                handle.upid,
                status.exit_status,
                poll_count,
            )
            return TaskResult(
                success=status.exit_status == OK_EXIT_STATUS,
                exit_status=status.exit_status,
                poll_count=poll_count,
            )
        if deadline is not None and monotonic() >= deadline:
            raise TaskTimeoutError(
                f'Task {handle.upid} on node {handle.node} still '
                f'{status.status!r} after {timeout_s}s ({poll_count} polls)'
            )
        sleep(poll_interval_s)


def require_success(result: TaskResult, what: str) -> TaskResult:
    if not result.success:
        raise TaskFailedError(what, result.exit_status)
    return result
