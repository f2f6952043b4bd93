from __future__ import annotations

import shlex
from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import FleetConfig, load
from ..context import FleetContext
from ..store import VersionHandle

log = logger

DEFAULT_CONFIG_NAME = '.pvefleet.toml'


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help=f'Path to config TOML (default: {DEFAULT_CONFIG_NAME}).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def _cfg_path(p: str | None) -> Path:
    return Path(p or DEFAULT_CONFIG_NAME).resolve()


def _load_cfg_with_path(config_path: str | None) -> tuple[FleetConfig, Path]:
    path = _cfg_path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f'Config not found: {path}. '
            f'Run: pvefleet config init --config {path}'
        )
    return load(path).expanded_paths(), path


def _load_cfg(config_path: str | None) -> FleetConfig:
    cfg, _ = _load_cfg_with_path(config_path)
    return cfg


def _context(config_path: str | None) -> FleetContext:
    return FleetContext.from_config(_load_cfg(config_path))


def _require_vm(vm: str | None) -> str:
    name = str(vm or '').strip()
    if not name:
        raise RuntimeError('A VM name is required (pass --vm NAME).')
    return name


def _opt_int(value) -> int | None:
    if value is None or value == '':
        return None
    return int(value)


def _opt_float(value) -> float | None:
    if value is None or value == '':
        return None
    return float(value)


def _parse_kv_arg(text: str) -> dict[str, str]:
    """Parse ``'agent=1 net0=virtio,bridge=vmbr0'`` into a mapping."""
    out: dict[str, str] = {}
    for token in shlex.split(text or ''):
        if '=' not in token:
            raise RuntimeError(
                f'Expected key=value, got {token!r}. '
                "Example: --options 'agent=1 memory=4096'"
            )
        key, value = token.split('=', 1)
        key = key.strip()
        if not key:
            raise RuntimeError(f'Empty key in {token!r}')
        out[key] = value
    return out


def _report(handle: VersionHandle, attrs: dict | None = None) -> None:
    print(f'Recorded {handle} -> {handle.path}')
    if attrs:
        for key in ('vmid', 'status', 'ip', 'wasStarted', 'boot', 'success'):
            if key in attrs:
                print(f'  {key} = {attrs[key]}')


__all__ = [name for name in globals() if not name.startswith('__')]
