"""Fleet-wide discovery: one resource version per VM on the node."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from loguru import logger

from ..auth import AuthSession
from ..context import FleetContext
from ..guest import discover_guest_ip
from ..resolver import list_vms
from ..responses import VMListEntry
from ..results import OperationLog, VMRecord, normalize_status
from ..store import VersionHandle
from .lifecycle import VM_KIND

log = logger


def _sync_ip(
    ctx: FleetContext, vm: VMListEntry, session: AuthSession
) -> Optional[str]:
    if vm.status != 'running':
        return None
    return discover_guest_ip(
        ctx.client,
        ctx.node,
        vm.vmid,
        session,
        wait_s=ctx.cfg.guest.sync_wait_s,
        poll_interval_s=ctx.cfg.guest.sync_poll_interval_s,
    )


def _fmt_gb(nbytes: int) -> str:
    return f'{round(nbytes / 1024**3)}GB'


def sync_vms(
    ctx: FleetContext, *, max_workers: Optional[int] = None
) -> list[VersionHandle]:
    """List every VM on the node and record its status and IP.

    Running VMs get a short guest-agent probe; a missing IP is recorded as
    ``null``. With ``max_workers > 1`` the probes run on a thread pool that
    shares the session read-only. Records are written in list order.
    """
    workers = ctx.cfg.sync.max_workers if max_workers is None else max_workers
    oplog = OperationLog()
    oplog.add(f'Syncing all VMs from node {ctx.node}')
    session = ctx.session().session
    vms = list_vms(ctx.client, ctx.node, session)
    oplog.add(f'Found {len(vms)} VMs, resolving IPs for running VMs')

    if workers > 1 and len(vms) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            ips = list(executor.map(lambda vm: _sync_ip(ctx, vm, session), vms))
    else:
        ips = [_sync_ip(ctx, vm, session) for vm in vms]

    handles: list[VersionHandle] = []
    for vm, ip in zip(vms, ips):
        vm_name = vm.name or f'vm-{vm.vmid}'
        line = f'  {vm_name} (vmid {vm.vmid}) [{vm.status}]'
        if ip:
            line += f' ip={ip}'
        if vm.maxmem:
            line += f' mem={_fmt_gb(vm.maxmem)}'
        oplog.add(line)
        handle = ctx.store.write(
            VM_KIND,
            vm_name,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm_name,
                status=normalize_status(vm.status),
                ip=ip,
                maxmem=vm.maxmem,
                maxcpu=vm.maxcpu,
                logs=oplog.text(),
            ).as_dict(),
        )
        handles.append(handle)

    oplog.add(f'Complete: {len(handles)} VMs synced')
    return handles
