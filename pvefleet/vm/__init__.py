"""VM operation exports for lifecycle and fleet sync."""

from __future__ import annotations

from .lifecycle import (
    VM_KIND,
    create_vm,
    delete_vm,
    lookup_vm,
    set_boot_order,
    set_config,
    start_vm,
    stop_vm,
)
from .sync import sync_vms

__all__ = [
    'VM_KIND',
    'create_vm',
    'delete_vm',
    'lookup_vm',
    'set_boot_order',
    'set_config',
    'start_vm',
    'stop_vm',
    'sync_vms',
]
