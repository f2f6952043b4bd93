"""Node-level operations: explicit authentication and resource usage."""

from __future__ import annotations

from loguru import logger

from .auth import resolve_session
from .context import FleetContext
from .errors import HypervisorAPIError
from .responses import NodeStatus
from .results import OperationLog
from .store import VersionHandle
from .util import isoformat, utcnow

log = logger

STATUS_KIND = 'status'


def node_auth(ctx: FleetContext) -> VersionHandle:
    """Mint a fresh session and persist it as the shared auth root.

    The cache is always skipped here, so every explicit ``auth`` produces a
    new version that other operations pick up through the session cache.
    """
    oplog = OperationLog()
    oplog.add(f'Authenticating with Proxmox at {ctx.cfg.connection.api_url}')
    resolution = resolve_session(
        ctx.cfg.connection, ctx.client, None, skip_cache=True
    )
    oplog.add(f'Authentication successful (source: {resolution.source})')
    return ctx.sessions.put(resolution.session, logs=oplog.text())


def node_status(ctx: FleetContext) -> VersionHandle:
    session = ctx.session().session
    resp = ctx.client.call('GET', f'/nodes/{ctx.node}/status', session)
    if not resp.ok:
        raise HypervisorAPIError(
            'Failed to fetch node status', resp.status_code, resp.text
        )
    st = NodeStatus.from_response(resp)
    log.info(
        'Node {}: mem {}/{} bytes, cpu {:.0%} of {} cpus, uptime {}s',
        ctx.node,
        st.memory_used,
        st.memory_total,
        st.cpu_usage,
        st.cpu_count,
        st.uptime,
    )
    return ctx.node_store.write(
        STATUS_KIND,
        STATUS_KIND,
        {
            'memoryTotal': st.memory_total,
            'memoryUsed': st.memory_used,
            'memoryFree': st.memory_free,
            'cpuUsage': st.cpu_usage,
            'cpuCount': st.cpu_count,
            'uptime': st.uptime,
            'timestamp': isoformat(utcnow()),
        },
    )
