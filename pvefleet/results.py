"""Operation log accumulation and the persisted VM record layout."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from loguru import logger

from .util import isoformat, utcnow

log = logger

VM_STATUSES = ('stopped', 'running', 'deleted', 'unknown')


def normalize_status(raw: str) -> str:
    raw = (raw or '').strip().lower()
    return raw if raw in VM_STATUSES else 'unknown'


@dataclass
class OperationLog:
    """Ordered, operator-facing status lines persisted with each result."""

    lines: list[str] = field(default_factory=list)

    def add(self, msg: str) -> None:
        self.lines.append(msg)
        log.opt(depth=1).info(msg)

    def text(self) -> str:
        return '\n'.join(self.lines)


@dataclass
class VMRecord:
    vmid: Optional[int]
    vm_name: str
    status: Optional[str] = None
    ip: Optional[str] = None
    maxmem: Optional[int] = None
    maxcpu: Optional[int] = None
    success: Optional[bool] = None
    was_started: Optional[bool] = None
    boot: Optional[str] = None
    config: Optional[dict[str, str]] = None
    logs: str = ''
    timestamp: str = field(default_factory=lambda: isoformat(utcnow()))

    def as_dict(self) -> dict[str, Any]:
        """Attributes in the key layout downstream consumers read."""
        d: dict[str, Any] = {'vmid': self.vmid, 'vmName': self.vm_name}
        if self.status is not None:
            d['status'] = self.status
            d['ip'] = self.ip
        optional = {
            'maxmem': self.maxmem,
            'maxcpu': self.maxcpu,
            'success': self.success,
            'wasStarted': self.was_started,
            'boot': self.boot,
            'config': dict(self.config) if self.config is not None else None,
        }
        d.update({k: v for k, v in optional.items() if v is not None})
        d['logs'] = self.logs
        d['timestamp'] = self.timestamp
        return d
