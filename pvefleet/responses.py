"""Typed views over hypervisor JSON payloads.

Every endpoint wraps its payload in ``{"data": ...}``. The ``from_response``
constructors validate only the fields this package reads and raise
:class:`UnexpectedResponseError` when one is missing or has the wrong type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .client import HttpResponse
from .errors import UnexpectedResponseError


def response_data(resp: HttpResponse, what: str) -> Any:
    payload = resp.json()
    if not isinstance(payload, dict) or 'data' not in payload:
        raise UnexpectedResponseError(
            f'{what}: expected an object with a "data" field, got {payload!r}'
        )
    return payload['data']


def _require(obj: Any, key: str, types: type | tuple[type, ...], what: str) -> Any:
    if not isinstance(obj, dict):
        raise UnexpectedResponseError(f'{what}: expected object, got {obj!r}')
    if key not in obj:
        raise UnexpectedResponseError(f'{what}: missing field {key!r}')
    value = obj[key]
    if isinstance(value, bool) or not isinstance(value, types):
        raise UnexpectedResponseError(
            f'{what}: field {key!r} has unexpected value {value!r}'
        )
    return value


def _optional_number(obj: dict, key: str) -> Optional[int]:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


@dataclass(frozen=True)
class TicketData:
    ticket: str
    csrf_token: str

    @classmethod
    def from_response(cls, resp: HttpResponse) -> 'TicketData':
        what = 'ticket response'
        data = response_data(resp, what)
        return cls(
            ticket=_require(data, 'ticket', str, what),
            csrf_token=_require(data, 'CSRFPreventionToken', str, what),
        )


@dataclass(frozen=True)
class VMListEntry:
    vmid: int
    name: str
    status: str
    maxmem: Optional[int] = None
    maxcpu: Optional[int] = None

    @classmethod
    def from_item(cls, item: Any) -> 'VMListEntry':
        what = 'VM list entry'
        vmid = _require(item, 'vmid', (int, str), what)
        try:
            vmid = int(vmid)
        except ValueError:
            raise UnexpectedResponseError(f'{what}: bad vmid {vmid!r}')
        name = item.get('name') or ''
        if not isinstance(name, str):
            raise UnexpectedResponseError(f'{what}: bad name {name!r}')
        return cls(
            vmid=vmid,
            name=name,
            status=str(item.get('status') or 'unknown'),
            maxmem=_optional_number(item, 'maxmem'),
            maxcpu=_optional_number(item, 'maxcpu'),
        )


def parse_vm_list(resp: HttpResponse) -> list[VMListEntry]:
    data = response_data(resp, 'VM list')
    if not isinstance(data, list):
        raise UnexpectedResponseError(f'VM list: expected a list, got {data!r}')
    return [VMListEntry.from_item(item) for item in data]


def parse_upid(resp: HttpResponse, what: str) -> str:
    data = response_data(resp, what)
    if not isinstance(data, str) or not data:
        raise UnexpectedResponseError(
            f'{what}: expected a task id string, got {data!r}'
        )
    return data


def parse_next_vmid(resp: HttpResponse) -> int:
    data = response_data(resp, 'next vmid')
    try:
        return int(data)
    except (TypeError, ValueError):
        raise UnexpectedResponseError(f'next vmid: bad value {data!r}')


@dataclass(frozen=True)
class TaskStatus:
    status: str
    exit_status: str = ''

    @property
    def terminal(self) -> bool:
        return self.status == 'stopped'

    @classmethod
    def from_response(cls, resp: HttpResponse) -> 'TaskStatus':
        what = 'task status'
        data = response_data(resp, what)
        status = _require(data, 'status', str, what)
        exit_status = data.get('exitstatus')
        return cls(
            status=status,
            exit_status='' if exit_status is None else str(exit_status),
        )


@dataclass(frozen=True)
class GuestInterface:
    name: str
    ipv4: list[str] = field(default_factory=list)

    @classmethod
    def from_item(cls, item: Any) -> 'GuestInterface':
        what = 'guest interface'
        name = _require(item, 'name', str, what)
        addrs = item.get('ip-addresses')
        if addrs is None:
            addrs = []
        if not isinstance(addrs, list):
            raise UnexpectedResponseError(
                f'{what}: field {"ip-addresses"!r} has unexpected value {addrs!r}'
            )
        ipv4: list[str] = []
        for addr in addrs:
            if not isinstance(addr, dict):
                continue
            if addr.get('ip-address-type') != 'ipv4':
                continue
            value = addr.get('ip-address')
            if isinstance(value, str) and value:
                ipv4.append(value)
        return cls(name=name, ipv4=ipv4)


def parse_guest_interfaces(resp: HttpResponse) -> list[GuestInterface]:
    data = response_data(resp, 'guest interfaces')
    result = data.get('result') if isinstance(data, dict) else None
    if not isinstance(result, list):
        raise UnexpectedResponseError(
            f'guest interfaces: expected a result list, got {data!r}'
        )
    return [GuestInterface.from_item(item) for item in result]


@dataclass(frozen=True)
class NodeStatus:
    memory_total: int
    memory_used: int
    cpu_usage: float
    cpu_count: int
    uptime: int

    @property
    def memory_free(self) -> int:
        return self.memory_total - self.memory_used

    @classmethod
    def from_response(cls, resp: HttpResponse) -> 'NodeStatus':
        what = 'node status'
        data = response_data(resp, what)
        memory = _require(data, 'memory', dict, what)
        cpuinfo = _require(data, 'cpuinfo', dict, what)
        return cls(
            memory_total=int(_require(memory, 'total', (int, float), what)),
            memory_used=int(_require(memory, 'used', (int, float), what)),
            cpu_usage=float(_require(data, 'cpu', (int, float), what)),
            cpu_count=int(_require(cpuinfo, 'cpus', (int, float), what)),
            uptime=int(_require(data, 'uptime', (int, float), what)),
        )
