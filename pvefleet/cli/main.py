"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ..context import FleetContext
from ..status import render_fleet_status
from ._common import _BaseCommand, _cfg_path, _load_cfg, log
from .config import ConfigModalCLI
from .node import NodeModalCLI
from .resource import ResourceModalCLI
from .vm import VMModalCLI


class StatusCLI(_BaseCommand):
    """Summarize the recorded fleet state without calling the hypervisor."""

    detail = scfg.Value(
        False, isflag=True, help='Include the operation log of each VM.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = FleetContext.from_config(_load_cfg(args.config))
        print(
            render_fleet_status(
                ctx.store, ctx.node_store, ctx.sessions, detail=args.detail
            )
        )
        return 0


class FleetModalCLI(scfg.ModalCLI):
    """Proxmox VM fleet lifecycle manager with a versioned resource store."""

    config = ConfigModalCLI
    node = NodeModalCLI
    vm = VMModalCLI
    resource = ResourceModalCLI
    status = StatusCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    config_value = None
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    if '--config' in argv:
        try:
            config_value = argv[argv.index('--config') + 1]
        except IndexError:
            pass
    try:
        if config_value is not None or _cfg_path(None).exists():
            verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = FleetModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled pvefleet error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


_VM_COMMANDS = {
    'lookup',
    'start',
    'stop',
    'create',
    'delete',
    'set_boot_order',
    'set_config',
}


def _normalize_argv(argv: list[str]) -> list[str]:
    """Normalize hyphenated spellings and positional VM names."""
    if len(argv) >= 1 and argv[0] == 'init':
        return ['config', 'init', *argv[1:]]
    if len(argv) >= 1 and argv[0] == 'auth':
        return ['node', 'auth', *argv[1:]]
    if len(argv) >= 1 and argv[0] == 'ls':
        return ['resource', 'list', *argv[1:]]
    if len(argv) >= 2 and argv[0] == 'vm':
        sub = argv[1].replace('-', '_')
        rest = argv[2:]
        if sub in _VM_COMMANDS and rest and not rest[0].startswith('-'):
            return [argv[0], sub, '--vm', rest[0], *rest[1:]]
        return [argv[0], sub, *rest]
    return argv


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
