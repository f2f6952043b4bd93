"""Tests for name to vmid resolution."""

from __future__ import annotations

import pytest

from fakes import error
from pvefleet.auth import AuthSession
from pvefleet.errors import HypervisorAPIError, VMNotFoundError
from pvefleet.resolver import resolve_vm

SESSION = AuthSession('T', 'C')


def test_resolve_by_exact_name(hv) -> None:
    hv.vm_list(
        {'vmid': 100, 'name': 'alpha-2', 'status': 'running'},
        {'vmid': 101, 'name': 'alpha', 'status': 'stopped'},
    )
    vm = resolve_vm(hv, 'pve', 'alpha', SESSION)
    assert (vm.vmid, vm.status) == (101, 'stopped')


def test_not_found_lists_names(hv) -> None:
    hv.vm_list(
        {'vmid': 100, 'name': 'alpha', 'status': 'running'},
        {'vmid': 101, 'status': 'stopped'},
        {'vmid': 102, 'name': 'beta', 'status': 'running'},
    )
    with pytest.raises(VMNotFoundError) as info:
        resolve_vm(hv, 'pve', 'gamma', SESSION)
    assert str(info.value) == 'VM "gamma" not found. Available: alpha, beta'
    assert info.value.available == ['alpha', 'beta']


def test_list_failure(hv) -> None:
    hv.route('GET', '/nodes/pve/qemu', error(401, 'permission denied'))
    with pytest.raises(HypervisorAPIError) as info:
        resolve_vm(hv, 'pve', 'alpha', SESSION)
    assert info.value.status_code == 401
