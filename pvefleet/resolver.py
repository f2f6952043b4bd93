"""Map caller-assigned VM names to hypervisor ids and coarse status."""

from __future__ import annotations

from dataclasses import dataclass

from .auth import AuthSession
from .client import HypervisorClient
from .errors import HypervisorAPIError, VMNotFoundError
from .responses import VMListEntry, parse_vm_list


@dataclass(frozen=True)
class VMRef:
    vmid: int
    name: str
    status: str


def list_vms(
    client: HypervisorClient, node: str, session: AuthSession
) -> list[VMListEntry]:
    resp = client.call('GET', f'/nodes/{node}/qemu', session)
    if not resp.ok:
        raise HypervisorAPIError(
            'Failed to list VMs', resp.status_code, resp.text
        )
    return parse_vm_list(resp)


def resolve_vm(
    client: HypervisorClient, node: str, vm_name: str, session: AuthSession
) -> VMRef:
    vms = list_vms(client, node, session)
    for vm in vms:
        if vm.name == vm_name:
            return VMRef(vmid=vm.vmid, name=vm.name, status=vm.status)
    raise VMNotFoundError(vm_name, [vm.name for vm in vms if vm.name])
