"""CLI commands for VM lifecycle operations and fleet sync."""

from __future__ import annotations

import scriptconfig as scfg

from ..vm import (
    VM_KIND,
    create_vm,
    delete_vm,
    lookup_vm,
    set_boot_order,
    set_config,
    start_vm,
    stop_vm,
    sync_vms,
)
from ._common import (
    _BaseCommand,
    _context,
    _opt_float,
    _opt_int,
    _parse_kv_arg,
    _report,
    _require_vm,
)


class _VMCommand(_BaseCommand):
    vm = scfg.Value('', help='VM name (caller-assigned identity).')


class VMLookupCLI(_VMCommand):
    """Look up a VM by name and record its vmid, status and IP."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = lookup_vm(ctx, _require_vm(args.vm))
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMStartCLI(_VMCommand):
    """Start a VM if stopped and wait for its guest-agent IP."""

    wait_s = scfg.Value(None, help='Max seconds to wait for the VM IP.')
    poll_interval_s = scfg.Value(None, help='Seconds between IP polls.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = start_vm(
            ctx,
            _require_vm(args.vm),
            wait_s=_opt_float(args.wait_s),
            poll_interval_s=_opt_float(args.poll_interval_s),
        )
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMStopCLI(_VMCommand):
    """Stop a VM by name (no-op when already stopped)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = stop_vm(ctx, _require_vm(args.vm))
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMCreateCLI(_VMCommand):
    """Create a new stopped VM on the next free vmid."""

    memory_mb = scfg.Value(None, help='Memory in MB (default from config).')
    cores = scfg.Value(None, help='CPU cores.')
    sockets = scfg.Value(None, help='CPU sockets.')
    disk_gb = scfg.Value(None, help='Disk size in GB (0 for PXE-only).')
    disk_storage = scfg.Value('', help='Storage pool.')
    network_bridge = scfg.Value('', help='Network bridge.')
    os_type = scfg.Value('', help='OS type.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = create_vm(
            ctx,
            _require_vm(args.vm),
            memory_mb=_opt_int(args.memory_mb),
            cores=_opt_int(args.cores),
            sockets=_opt_int(args.sockets),
            disk_gb=_opt_int(args.disk_gb),
            disk_storage=args.disk_storage or None,
            network_bridge=args.network_bridge or None,
            os_type=args.os_type or None,
        )
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMDeleteCLI(_VMCommand):
    """Stop (best effort) and delete a VM by name."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = delete_vm(ctx, _require_vm(args.vm))
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMSetBootOrderCLI(_VMCommand):
    """Set the raw boot order string, e.g. 'order=scsi0;net0'."""

    boot = scfg.Value('', help='Boot order string.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        boot = str(args.boot or '').strip()
        if not boot:
            raise RuntimeError("--boot is required, e.g. --boot 'order=scsi0;net0'")
        ctx = _context(args.config)
        handle = set_boot_order(ctx, _require_vm(args.vm), boot)
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMSetConfigCLI(_VMCommand):
    """Set arbitrary hypervisor config keys on a VM."""

    options = scfg.Value(
        '',
        help="Space separated key=value pairs, e.g. 'agent=1 memory=4096'.",
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        vm_name = _require_vm(args.vm)
        params = _parse_kv_arg(args.options)
        ctx = _context(args.config)
        handle = set_config(ctx, vm_name, params)
        _report(handle, ctx.store.latest_attributes(VM_KIND, handle.name))
        return 0


class VMSyncCLI(_BaseCommand):
    """Record status and IP of every VM on the node."""

    max_workers = scfg.Value(
        None, help='Parallel guest-agent probes (default from config).'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handles = sync_vms(ctx, max_workers=_opt_int(args.max_workers))
        for handle in handles:
            print(f'Recorded {handle}')
        print(f'{len(handles)} VMs synced')
        return 0


class VMModalCLI(scfg.ModalCLI):
    """VM lifecycle commands."""

    lookup = VMLookupCLI
    start = VMStartCLI
    stop = VMStopCLI
    create = VMCreateCLI
    delete = VMDeleteCLI
    set_boot_order = VMSetBootOrderCLI
    set_config = VMSetConfigCLI
    sync = VMSyncCLI
