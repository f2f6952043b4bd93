"""CLI commands for node authentication and node usage."""

from __future__ import annotations

import scriptconfig as scfg

from ..node import node_auth, node_status
from ._common import _BaseCommand, _context, _report


class NodeAuthCLI(_BaseCommand):
    """Authenticate with the hypervisor and persist a fresh session."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = node_auth(ctx)
        print(f'Recorded {handle} -> {handle.path}')
        return 0


class NodeStatusCLI(_BaseCommand):
    """Fetch and record node memory, CPU and uptime."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        ctx = _context(args.config)
        handle = node_status(ctx)
        _report(handle)
        return 0


class NodeModalCLI(scfg.ModalCLI):
    """Node-level operations."""

    auth = NodeAuthCLI
    status = NodeStatusCLI
