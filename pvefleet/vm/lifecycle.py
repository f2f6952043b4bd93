"""VM state transitions: create, start, stop, delete, boot order, config, lookup."""

from __future__ import annotations

import base64
from typing import Mapping, Optional

from loguru import logger

from ..auth import AuthSession
from ..context import FleetContext
from ..errors import (
    ConfigurationError,
    FleetError,
    GuestIPTimeoutError,
    HypervisorAPIError,
    VMNotFoundError,
)
from ..guest import discover_guest_ip
from ..resolver import VMRef, resolve_vm
from ..responses import parse_next_vmid, parse_upid
from ..results import OperationLog, VMRecord, normalize_status
from ..store import VersionHandle
from ..tasks import TaskHandle, TaskResult, require_success, wait_for_task

log = logger

VM_KIND = 'vm'

DISK_BOOT_ORDER = 'order=scsi0;net0'
PXE_BOOT_ORDER = 'order=net0'


def _vm_path(ctx: FleetContext, vmid: int, suffix: str = '') -> str:
    return f'/nodes/{ctx.node}/qemu/{vmid}{suffix}'


def _submit_task(
    ctx: FleetContext,
    method: str,
    path: str,
    session: AuthSession,
    what: str,
    *,
    data: Optional[Mapping[str, str]] = None,
) -> TaskHandle:
    resp = ctx.client.call(method, path, session, data=data)
    if not resp.ok:
        raise HypervisorAPIError(f'Failed to {what}', resp.status_code, resp.text)
    return TaskHandle(upid=parse_upid(resp, what), node=ctx.node)


def _await(
    ctx: FleetContext, handle: TaskHandle, session: AuthSession
) -> TaskResult:
    return wait_for_task(
        ctx.client,
        handle,
        session,
        poll_interval_s=ctx.cfg.tasks.poll_interval_s,
        timeout_s=ctx.cfg.tasks.timeout_s,
    )


def _write(ctx: FleetContext, record: VMRecord) -> VersionHandle:
    handle = ctx.store.write(VM_KIND, record.vm_name, record.as_dict())
    log.debug('Recorded {}', handle)
    return handle


def _resolve(
    ctx: FleetContext, vm_name: str, session: AuthSession, oplog: OperationLog
) -> VMRef:
    vm = resolve_vm(ctx.client, ctx.node, vm_name, session)
    oplog.add(f'Found VM "{vm_name}" -> vmid {vm.vmid} [{vm.status}]')
    return vm


def lookup_vm(ctx: FleetContext, vm_name: str) -> VersionHandle:
    """Record the current status (and IP, if running) of one VM."""
    oplog = OperationLog()
    oplog.add(f'Looking up VM "{vm_name}" on node {ctx.node}')
    session = ctx.session().session
    vm = _resolve(ctx, vm_name, session, oplog)
    ip = None
    if vm.status == 'running':
        oplog.add('VM is running, fetching IP from guest agent')
        ip = discover_guest_ip(
            ctx.client,
            ctx.node,
            vm.vmid,
            session,
            wait_s=ctx.cfg.guest.lookup_wait_s,
            poll_interval_s=ctx.cfg.guest.lookup_poll_interval_s,
        )
        oplog.add(f'Got IP: {ip}' if ip else 'Could not get IP from guest agent')
    return _write(
        ctx,
        VMRecord(
            vmid=vm.vmid,
            vm_name=vm.name,
            status=normalize_status(vm.status),
            ip=ip,
            logs=oplog.text(),
        ),
    )


def start_vm(
    ctx: FleetContext,
    vm_name: str,
    *,
    wait_s: Optional[float] = None,
    poll_interval_s: Optional[float] = None,
) -> VersionHandle:
    """Start the VM if it is stopped, then wait for a guest-agent IP.

    Raises :class:`GuestIPTimeoutError` when no IP shows up within
    ``wait_s`` even though the VM is running.
    """
    wait_s = ctx.cfg.guest.wait_s if wait_s is None else wait_s
    if poll_interval_s is None:
        poll_interval_s = ctx.cfg.guest.poll_interval_s
    oplog = OperationLog()
    oplog.add(f'Ensuring VM "{vm_name}" is running on node {ctx.node}')
    with ctx.locks.hold(vm_name):
        session = ctx.session().session
        vm = _resolve(ctx, vm_name, session, oplog)

        was_started = False
        if vm.status == 'stopped':
            oplog.add('VM is stopped, starting')
            task = _submit_task(
                ctx,
                'POST',
                _vm_path(ctx, vm.vmid, '/status/start'),
                session,
                'start VM',
            )
            result = require_success(_await(ctx, task, session), 'VM start')
            was_started = True
            oplog.add(
                f'VM {vm.vmid} started successfully ({result.poll_count} polls)'
            )
        else:
            oplog.add('VM is already running')

        oplog.add(f'Waiting for guest agent IP (up to {wait_s}s)')
        ip = discover_guest_ip(
            ctx.client,
            ctx.node,
            vm.vmid,
            session,
            wait_s=wait_s,
            poll_interval_s=poll_interval_s,
        )
        if not ip:
            raise GuestIPTimeoutError(
                f'VM "{vm_name}" (vmid {vm.vmid}) is running but guest agent '
                f'did not return an IP within {wait_s}s. Is qemu-guest-agent '
                'installed and agent enabled in VM config?'
            )
        oplog.add(f'Got IP: {ip}')
        return _write(
            ctx,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm.name,
                status='running',
                ip=ip,
                was_started=was_started,
                logs=oplog.text(),
            ),
        )


def stop_vm(ctx: FleetContext, vm_name: str) -> VersionHandle:
    oplog = OperationLog()
    oplog.add(f'Stopping VM "{vm_name}" on node {ctx.node}')
    with ctx.locks.hold(vm_name):
        session = ctx.session().session
        vm = _resolve(ctx, vm_name, session, oplog)
        if vm.status == 'stopped':
            oplog.add('VM is already stopped')
        else:
            oplog.add(f'Sending stop command for VM {vm.vmid}')
            task = _submit_task(
                ctx,
                'POST',
                _vm_path(ctx, vm.vmid, '/status/stop'),
                session,
                'stop VM',
            )
            oplog.add('Stop task initiated, waiting for completion')
            result = require_success(_await(ctx, task, session), 'VM stop')
            oplog.add(
                f'VM {vm.vmid} stopped successfully ({result.poll_count} polls)'
            )
        return _write(
            ctx,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm.name,
                status='stopped',
                ip=None,
                success=True,
                logs=oplog.text(),
            ),
        )


def _create_params(
    vmid: int,
    vm_name: str,
    *,
    memory_mb: int,
    cores: int,
    sockets: int,
    disk_gb: int,
    disk_storage: str,
    network_bridge: str,
    os_type: str,
) -> dict[str, str]:
    has_disk = disk_gb != 0
    serial = base64.b64encode(vm_name.encode('utf-8')).decode('ascii')
    params = {
        'vmid': str(vmid),
        'name': vm_name,
        'memory': str(memory_mb),
        'cores': str(cores),
        'sockets': str(sockets),
        'ostype': os_type,
        'agent': '1',
        'boot': DISK_BOOT_ORDER if has_disk else PXE_BOOT_ORDER,
        'net0': f'virtio,bridge={network_bridge}',
        'scsihw': 'virtio-scsi-single',
        'smbios1': f'base64=1,serial={serial}',
    }
    if has_disk:
        params['scsi0'] = f'{disk_storage}:{disk_gb},format=raw'
    return params


def create_vm(
    ctx: FleetContext,
    vm_name: str,
    *,
    memory_mb: Optional[int] = None,
    cores: Optional[int] = None,
    sockets: Optional[int] = None,
    disk_gb: Optional[int] = None,
    disk_storage: Optional[str] = None,
    network_bridge: Optional[str] = None,
    os_type: Optional[str] = None,
) -> VersionHandle:
    """Provision a new stopped VM on the next free vmid.

    Not idempotent: the hypervisor accepts duplicate names, so repeated calls
    create duplicate VMs. ``disk_gb=0`` creates a disk-less PXE machine.
    """
    d = ctx.cfg.create
    sizing = dict(
        memory_mb=d.memory_mb if memory_mb is None else memory_mb,
        cores=d.cores if cores is None else cores,
        sockets=d.sockets if sockets is None else sockets,
        disk_gb=d.disk_gb if disk_gb is None else disk_gb,
        disk_storage=disk_storage or d.disk_storage,
        network_bridge=network_bridge or d.network_bridge,
        os_type=os_type or d.os_type,
    )
    oplog = OperationLog()
    oplog.add(f'Creating VM "{vm_name}" on node {ctx.node}')
    with ctx.locks.hold(vm_name):
        session = ctx.session().session

        oplog.add('Fetching next available VM ID')
        resp = ctx.client.call('GET', '/cluster/nextid', session)
        if not resp.ok:
            raise HypervisorAPIError(
                'Failed to get next VM ID', resp.status_code, resp.text
            )
        vmid = parse_next_vmid(resp)
        oplog.add(f'Got next VM ID: {vmid}')

        disk_desc = (
            f'{sizing["disk_gb"]}GB disk' if sizing['disk_gb'] else 'no disk (PXE)'
        )
        oplog.add(
            f'Specs: {sizing["memory_mb"]}MB RAM, {sizing["cores"]} cores, {disk_desc}'
        )
        params = _create_params(vmid, vm_name, **sizing)
        task = _submit_task(
            ctx,
            'POST',
            f'/nodes/{ctx.node}/qemu',
            session,
            'create VM',
            data=params,
        )
        oplog.add('VM creation task started, waiting for completion')
        result = require_success(_await(ctx, task, session), 'VM creation')
        oplog.add(
            f'VM {vmid} ("{vm_name}") created successfully '
            f'({result.poll_count} polls)'
        )
        return _write(
            ctx,
            VMRecord(
                vmid=vmid,
                vm_name=vm_name,
                status='stopped',
                ip=None,
                success=True,
                logs=oplog.text(),
            ),
        )


def _best_effort_stop(
    ctx: FleetContext, vm: VMRef, session: AuthSession, oplog: OperationLog
) -> None:
    oplog.add(f'VM is {vm.status}, stopping first')
    try:
        resp = ctx.client.call(
            'POST', _vm_path(ctx, vm.vmid, '/status/stop'), session
        )
        if not resp.ok:
            oplog.add(
                f'Stop returned {resp.status_code} (VM may already be '
                'stopped), continuing to delete'
            )
            return
        task = TaskHandle(upid=parse_upid(resp, 'stop VM'), node=ctx.node)
        result = _await(ctx, task, session)
        oplog.add(f'VM {vm.vmid} stop: {result.exit_status}')
    except FleetError as ex:
        oplog.add(f'Stop failed (VM may already be stopped), continuing: {ex}')


def delete_vm(ctx: FleetContext, vm_name: str) -> VersionHandle:
    """Stop (best effort) and destroy a VM.

    With ``policy.delete_missing = 'idempotent'`` a VM that no longer exists
    is recorded as deleted instead of raising :class:`VMNotFoundError`.
    """
    oplog = OperationLog()
    oplog.add(f'Deleting VM "{vm_name}" on node {ctx.node}')
    with ctx.locks.hold(vm_name):
        session = ctx.session().session
        try:
            vm = _resolve(ctx, vm_name, session, oplog)
        except VMNotFoundError:
            if ctx.cfg.policy.delete_missing != 'idempotent':
                raise
            prev = ctx.store.latest_attributes(VM_KIND, vm_name) or {}
            oplog.add(f'VM "{vm_name}" is already absent, recording as deleted')
            return _write(
                ctx,
                VMRecord(
                    vmid=prev.get('vmid'),
                    vm_name=vm_name,
                    status='deleted',
                    ip=None,
                    success=True,
                    logs=oplog.text(),
                ),
            )

        if vm.status != 'stopped':
            _best_effort_stop(ctx, vm, session, oplog)

        oplog.add(f'Sending delete command for VM {vm.vmid}')
        task = _submit_task(
            ctx, 'DELETE', _vm_path(ctx, vm.vmid), session, 'delete VM'
        )
        oplog.add('Delete task initiated, waiting for completion')
        result = require_success(_await(ctx, task, session), 'VM deletion')
        oplog.add(
            f'VM {vm.vmid} deleted successfully ({result.poll_count} polls)'
        )
        return _write(
            ctx,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm.name,
                status='deleted',
                ip=None,
                success=True,
                logs=oplog.text(),
            ),
        )


def _put_config(
    ctx: FleetContext,
    vm: VMRef,
    session: AuthSession,
    params: Mapping[str, str],
    what: str,
) -> None:
    resp = ctx.client.call(
        'PUT', _vm_path(ctx, vm.vmid, '/config'), session, data=params
    )
    if not resp.ok:
        raise HypervisorAPIError(f'Failed to {what}', resp.status_code, resp.text)


def set_boot_order(ctx: FleetContext, vm_name: str, boot: str) -> VersionHandle:
    oplog = OperationLog()
    oplog.add(f'Setting boot order for VM "{vm_name}" to: {boot}')
    with ctx.locks.hold(vm_name):
        session = ctx.session().session
        vm = _resolve(ctx, vm_name, session, oplog)
        _put_config(ctx, vm, session, {'boot': boot}, 'set boot order')
        oplog.add(f'Boot order updated for VM {vm.vmid}: {boot}')
        return _write(
            ctx,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm.name,
                boot=boot,
                success=True,
                logs=oplog.text(),
            ),
        )


def set_config(
    ctx: FleetContext, vm_name: str, config: Mapping[str, object]
) -> VersionHandle:
    """PUT arbitrary hypervisor config keys (e.g. ``agent``, ``memory``)."""
    params = {str(k): str(v) for k, v in (config or {}).items()}
    if not params:
        raise ConfigurationError(
            'No config params provided. Pass at least one key=value pair, '
            "e.g. {'agent': '1'}."
        )
    oplog = OperationLog()
    with ctx.locks.hold(vm_name):
        session = ctx.session().session
        vm = _resolve(ctx, vm_name, session, oplog)
        rendered = ' '.join(f'{k}={v}' for k, v in params.items())
        oplog.add(f'Setting config: {rendered}')
        _put_config(ctx, vm, session, params, 'set config')
        oplog.add(f'Config updated for VM {vm.vmid}')
        return _write(
            ctx,
            VMRecord(
                vmid=vm.vmid,
                vm_name=vm.name,
                config=params,
                success=True,
                logs=oplog.text(),
            ),
        )
