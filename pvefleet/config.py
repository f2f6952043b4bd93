"""Dataclass configuration sections persisted as a single TOML file."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

import ubelt as ub

from .util import expand

VM_MODEL_TYPE = 'proxmox/vm'
NODE_MODEL_TYPE = 'proxmox/node'
AUTH_TTL_S = 2 * 60 * 60

SECTIONS = (
    'connection',
    'auth',
    'tasks',
    'guest',
    'create',
    'sync',
    'store',
    'policy',
)


@dataclass
class ConnectionConfig:
    api_url: str = 'https://127.0.0.1:8006'
    node: str = 'pve'
    username: str = ''
    password: str = ''
    password_env: str = 'PVEFLEET_PASSWORD'
    realm: str = 'pam'
    ticket: str = ''
    csrf_token: str = ''
    skip_tls_verify: bool = True
    request_timeout_s: int = 30

    @property
    def principal(self) -> str:
        return f'{self.username}@{self.realm or "pam"}'


@dataclass
class AuthConfig:
    ttl_s: int = AUTH_TTL_S
    cache_model_type: str = NODE_MODEL_TYPE
    cache_definition_id: str = ''


@dataclass
class TaskConfig:
    poll_interval_s: int = 1
    # 0 disables the deadline.
    timeout_s: int = 600


@dataclass
class GuestConfig:
    wait_s: int = 120
    poll_interval_s: int = 5
    lookup_wait_s: int = 15
    lookup_poll_interval_s: int = 3
    sync_wait_s: int = 5
    sync_poll_interval_s: int = 2


@dataclass
class CreateConfig:
    memory_mb: int = 2048
    cores: int = 2
    sockets: int = 1
    disk_gb: int = 32
    disk_storage: str = 'local-lvm'
    network_bridge: str = 'vmbr0'
    os_type: str = 'l26'


@dataclass
class SyncConfig:
    max_workers: int = 1


@dataclass
class StoreConfig:
    data_dir: str = ''
    definition_id: str = 'default'
    retention: int = 10


@dataclass
class PolicyConfig:
    # 'strict' raises when the VM is already gone, 'idempotent' records it.
    delete_missing: str = 'strict'


@dataclass
class FleetConfig:
    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    tasks: TaskConfig = field(default_factory=TaskConfig)
    guest: GuestConfig = field(default_factory=GuestConfig)
    create: CreateConfig = field(default_factory=CreateConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'FleetConfig':
        if not self.store.data_dir:
            self.store.data_dir = str(default_data_dir())
        self.store.data_dir = expand(self.store.data_dir)
        return self

    @property
    def cache_definition_id(self) -> str:
        return self.auth.cache_definition_id or self.store.definition_id


def default_data_dir() -> Path:
    return Path(ub.Path.appdir('pvefleet', type='data'))


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: FleetConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f'{k} = {"true" if v else "false"}')
                elif isinstance(v, int):
                    lines.append(f'{k} = {v}')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
        elif section == 'verbosity' and body != 1:
            lines.append(f'{section} = {body}')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def loads(text: str) -> FleetConfig:
    raw = tomllib.loads(text)
    cfg = FleetConfig()
    for section in SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            sec = raw[section]
            obj = getattr(cfg, section)
            for k, v in sec.items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    return cfg


def load(path: str | Path) -> FleetConfig:
    return loads(Path(path).read_text(encoding='utf-8'))


def save(path: Path, cfg: FleetConfig) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_toml(cfg), encoding='utf-8')
