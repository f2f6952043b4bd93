"""Render fleet state from the resource store without contacting the hypervisor."""

from __future__ import annotations

from .auth import SessionCache
from .node import STATUS_KIND
from .store import ResourceStore
from .vm import VM_KIND


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def clip(text: str, *, max_lines: int = 60) -> str:
    lines = (text or '').strip().splitlines()
    if len(lines) <= max_lines:
        return '\n'.join(lines)
    keep: list[str] = list(lines[:max_lines])
    keep.append(f'... ({len(lines) - max_lines} more lines)')
    return '\n'.join(keep)


def _vm_line(name: str, attrs: dict, version: int) -> str:
    status = attrs.get('status')
    ok: bool | None
    if status == 'running':
        ok = True if attrs.get('ip') else None
    elif status in {'stopped', 'deleted'}:
        ok = None
    elif status is None:
        ok = None if attrs.get('success', True) else False
    else:
        ok = False
    parts = [f'vmid={attrs.get("vmid")}']
    if status is not None:
        parts.append(f'status={status}')
    if attrs.get('ip'):
        parts.append(f'ip={attrs["ip"]}')
    if attrs.get('boot'):
        parts.append(f'boot={attrs["boot"]}')
    parts.append(f'v{version}')
    parts.append(str(attrs.get('timestamp', '')))
    return status_line(ok, name, ' '.join(p for p in parts if p))


def render_fleet_status(
    store: ResourceStore,
    node_store: ResourceStore,
    sessions: SessionCache,
    *,
    detail: bool = False,
) -> str:
    lines = ['🧭 Fleet Status', f'store = {store.base}', '']
    session = sessions.get()
    lines.append(
        status_line(
            session is not None,
            'Cached session',
            f'{session.principal or "?"} (obtained {session.obtained_at})'
            if session is not None
            else 'missing or expired; run `pvefleet node auth`',
        )
    )
    node_rec = node_store.read_latest(STATUS_KIND, STATUS_KIND)
    if node_rec is not None:
        a = node_rec.attributes
        lines.append(
            status_line(
                True,
                'Node usage',
                f'mem {a.get("memoryUsed")}/{a.get("memoryTotal")} bytes '
                f'cpu {a.get("cpuUsage")} of {a.get("cpuCount")} '
                f'({a.get("timestamp")})',
            )
        )
    else:
        lines.append(status_line(None, 'Node usage', 'never recorded'))
    lines.append('')
    lines.append('VMs')
    names = store.names(VM_KIND)
    if not names:
        lines.append('  (none recorded; run `pvefleet vm sync`)')
    for name in names:
        rec = store.read_latest(VM_KIND, name)
        if rec is None:
            continue
        lines.append('  ' + _vm_line(name, rec.attributes, rec.version))
        if detail and rec.attributes.get('logs'):
            for log_line in clip(rec.attributes['logs'], max_lines=20).splitlines():
                lines.append(f'      {log_line}')
    return '\n'.join(lines)
