from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import FleetConfig, dump_toml, save
from ._common import _BaseCommand, _cfg_path, _load_cfg_with_path


class InitCLI(_BaseCommand):
    """Write a config file with connection settings and defaults."""

    api_url = scfg.Value('', help='Hypervisor API base URL, e.g. https://10.0.0.4:8006')
    node = scfg.Value('', help='Hypervisor node name.')
    username = scfg.Value('', help='Username for password login.')
    realm = scfg.Value('', help='Authentication realm (pam, pve, ...).')
    data_dir = scfg.Value('', help='Resource store root (default: user data dir).')
    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        cfg = FleetConfig()
        if args.api_url:
            cfg.connection.api_url = str(args.api_url)
        if args.node:
            cfg.connection.node = str(args.node)
        if args.username:
            cfg.connection.username = str(args.username)
        if args.realm:
            cfg.connection.realm = str(args.realm)
        if args.data_dir:
            cfg.store.data_dir = str(args.data_dir)
        save(path, cfg)
        print(f'Wrote config: {path}')
        print(
            f'Set the password via ${cfg.connection.password_env} '
            'or connection.password, then run: pvefleet node auth'
        )
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the resolved config (password redacted)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _load_cfg_with_path(args.config)
        for field_name in ('password', 'ticket', 'csrf_token'):
            if getattr(cfg.connection, field_name):
                setattr(cfg.connection, field_name, '<redacted>')
        print(f'# Config: {path}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigPathCLI(_BaseCommand):
    """Show the config file and resource store locations."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = _cfg_path(args.config)
        print(f'config = {path} ({"exists" if path.exists() else "missing"})')
        if path.exists():
            cfg, _ = _load_cfg_with_path(args.config)
            print(f'data_dir = {cfg.store.data_dir}')
            print(f'definition_id = {cfg.store.definition_id}')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management."""

    init = InitCLI
    show = ConfigShowCLI
    path = ConfigPathCLI
