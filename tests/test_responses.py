"""Tests for response payload parsing."""

from __future__ import annotations

import pytest

from fakes import agent_ifaces, reply
from pvefleet.errors import UnexpectedResponseError
from pvefleet.responses import (
    NodeStatus,
    TaskStatus,
    TicketData,
    parse_guest_interfaces,
    parse_next_vmid,
    parse_upid,
    parse_vm_list,
)


def test_ticket_data() -> None:
    got = TicketData.from_response(
        reply({'ticket': 'PVE:x', 'CSRFPreventionToken': 'abc', 'username': 'root@pam'})
    )
    assert got.ticket == 'PVE:x'
    assert got.csrf_token == 'abc'


def test_ticket_data_missing_token() -> None:
    with pytest.raises(UnexpectedResponseError, match='CSRFPreventionToken'):
        TicketData.from_response(reply({'ticket': 'PVE:x'}))


def test_vm_list_tolerates_unnamed_and_string_vmid() -> None:
    vms = parse_vm_list(
        reply(
            [
                {'vmid': 100, 'name': 'alpha', 'status': 'running', 'maxmem': 2147483648, 'maxcpu': 2},
                {'vmid': '101', 'status': 'stopped'},
            ]
        )
    )
    assert [v.vmid for v in vms] == [100, 101]
    assert vms[0].maxmem == 2147483648
    assert vms[1].name == ''
    assert vms[1].maxcpu is None


def test_vm_list_requires_list() -> None:
    with pytest.raises(UnexpectedResponseError):
        parse_vm_list(reply({'vmid': 100}))


def test_upid_and_nextid() -> None:
    assert parse_upid(reply('UPID:pve:1:qmstart'), 'start') == 'UPID:pve:1:qmstart'
    with pytest.raises(UnexpectedResponseError):
        parse_upid(reply(None), 'start')
    assert parse_next_vmid(reply('105')) == 105
    with pytest.raises(UnexpectedResponseError):
        parse_next_vmid(reply('abc'))


def test_task_status() -> None:
    running = TaskStatus.from_response(reply({'status': 'running'}))
    assert not running.terminal
    assert running.exit_status == ''
    done = TaskStatus.from_response(reply({'status': 'stopped', 'exitstatus': 'OK'}))
    assert done.terminal
    assert done.exit_status == 'OK'


def test_guest_interfaces_keep_only_ipv4() -> None:
    payload = agent_ifaces(('eth0', '10.0.0.5'))
    payload['result'][0]['ip-addresses'].append(
        {'ip-address-type': 'ipv6', 'ip-address': 'fe80::1'}
    )
    ifaces = parse_guest_interfaces(reply(payload))
    assert ifaces[0].name == 'eth0'
    assert ifaces[0].ipv4 == ['10.0.0.5']


def test_guest_interfaces_reject_non_list_addresses() -> None:
    with pytest.raises(UnexpectedResponseError, match='ip-addresses'):
        parse_guest_interfaces(reply({'result': [{'name': 'eth0', 'ip-addresses': 5}]}))
    ifaces = parse_guest_interfaces(reply({'result': [{'name': 'lo'}]}))
    assert ifaces[0].ipv4 == []


def test_node_status() -> None:
    st = NodeStatus.from_response(
        reply(
            {
                'memory': {'total': 1000, 'used': 400, 'free': 600},
                'cpu': 0.25,
                'cpuinfo': {'cpus': 8},
                'uptime': 3600,
            }
        )
    )
    assert st.memory_free == 600
    assert st.cpu_count == 8
    assert st.cpu_usage == 0.25
