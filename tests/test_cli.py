"""Tests for CLI wiring, argv normalization, and argument helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fakes import reply
from pvefleet.cli import FleetModalCLI
from pvefleet.cli._common import _parse_kv_arg
from pvefleet.cli.config import InitCLI
from pvefleet.cli.main import StatusCLI, _count_verbose, _normalize_argv
from pvefleet.config import load
from pvefleet.store import ResourceStore
from pvefleet.vm import VM_KIND


def _run(argv: list[str]) -> int:
    rc = FleetModalCLI.main(argv=_normalize_argv(argv), _noexit=True)
    return 0 if rc is None else int(rc)


def _init(tmp_path: Path) -> Path:
    cfg_path = tmp_path / '.pvefleet.toml'
    rc = InitCLI.main(
        argv=False,
        config=str(cfg_path),
        api_url='https://10.0.0.4:8006',
        node='pve2',
        username='ops',
        data_dir=str(tmp_path / 'data'),
    )
    assert rc == 0
    return cfg_path


def test_normalize_argv() -> None:
    assert _normalize_argv(['init', '--force']) == ['config', 'init', '--force']
    assert _normalize_argv(['auth']) == ['node', 'auth']
    assert _normalize_argv(['ls', '--model', 'node']) == [
        'resource',
        'list',
        '--model',
        'node',
    ]
    assert _normalize_argv(['vm', 'set-boot-order', 'alpha', '--boot', 'order=net0']) == [
        'vm',
        'set_boot_order',
        '--vm',
        'alpha',
        '--boot',
        'order=net0',
    ]
    assert _normalize_argv(['vm', 'stop', '--vm', 'alpha']) == ['vm', 'stop', '--vm', 'alpha']
    assert _normalize_argv(['vm', 'sync', 'extra']) == ['vm', 'sync', 'extra']
    assert _normalize_argv(['status']) == ['status']


def test_count_verbose() -> None:
    assert _count_verbose(['status', '-vv']) == 2
    assert _count_verbose(['--verbose', 'status', '-v']) == 2
    assert _count_verbose(['--vm', 'x']) == 0


def test_parse_kv_arg() -> None:
    got = _parse_kv_arg("agent=1 net0=virtio,bridge=vmbr0 'description=a b'")
    assert got == {'agent': '1', 'net0': 'virtio,bridge=vmbr0', 'description': 'a b'}
    assert _parse_kv_arg('') == {}
    with pytest.raises(RuntimeError, match='key=value'):
        _parse_kv_arg('agent')
    with pytest.raises(RuntimeError, match='Empty key'):
        _parse_kv_arg('=1')


def test_config_init_writes_and_refuses_overwrite(tmp_path: Path, capsys) -> None:
    cfg_path = _init(tmp_path)
    cfg = load(cfg_path)
    assert cfg.connection.api_url == 'https://10.0.0.4:8006'
    assert cfg.connection.node == 'pve2'
    assert cfg.connection.username == 'ops'
    assert cfg.store.data_dir == str(tmp_path / 'data')
    rc = InitCLI.main(argv=False, config=str(cfg_path))
    assert rc == 2
    assert 'already exists' in capsys.readouterr().err


def test_config_show_redacts_secrets(tmp_path: Path, capsys) -> None:
    cfg_path = _init(tmp_path)
    text = cfg_path.read_text(encoding='utf-8')
    cfg_path.write_text(
        text.replace('password = ""', 'password = "hunter2"'), encoding='utf-8'
    )
    capsys.readouterr()
    assert _run(['config', 'show', '--config', str(cfg_path)]) == 0
    out = capsys.readouterr().out
    assert 'hunter2' not in out
    assert 'password = "<redacted>"' in out


def test_positional_vm_name_reaches_operation(
    ctx, hv, clock, tmp_path: Path, monkeypatch
) -> None:
    cfg_path = _init(tmp_path)
    monkeypatch.setattr('pvefleet.cli.vm._context', lambda p: ctx)
    hv.vm_list({'vmid': 102, 'name': 'beta', 'status': 'stopped'})
    assert _run(['vm', 'stop', 'beta', '--config', str(cfg_path)]) == 0
    assert ctx.store.latest_attributes(VM_KIND, 'beta')['status'] == 'stopped'


def test_set_config_cli_parses_options(
    ctx, hv, clock, tmp_path: Path, monkeypatch
) -> None:
    cfg_path = _init(tmp_path)
    monkeypatch.setattr('pvefleet.cli.vm._context', lambda p: ctx)
    hv.vm_list({'vmid': 101, 'name': 'alpha', 'status': 'running'})
    hv.route('PUT', '/nodes/pve/qemu/101/config', reply(None))
    argv = ['vm', 'set-config', 'alpha', '--options', 'agent=1 memory=4096', '--config', str(cfg_path)]
    assert _run(argv) == 0
    assert hv.calls[-1].data == {'agent': '1', 'memory': '4096'}


def test_resource_commands(tmp_path: Path, capsys) -> None:
    cfg_path = _init(tmp_path)
    store = ResourceStore(tmp_path / 'data', 'proxmox/vm', 'default')
    for i in range(3):
        store.write(VM_KIND, 'alpha', {'vmid': 101, 'i': i})
    capsys.readouterr()

    assert _run(['ls', '--config', str(cfg_path)]) == 0
    assert 'vm/alpha | versions=3 | latest=v3' in capsys.readouterr().out

    assert _run(['resource', 'get', '--name', 'alpha', '--version', '2', '--config', str(cfg_path)]) == 0
    got = json.loads(capsys.readouterr().out)
    assert got['version'] == 2
    assert got['attributes'] == {'vmid': 101, 'i': 1}

    assert _run(['resource', 'gc', '--keep', '1', '--config', str(cfg_path)]) == 0
    assert store.versions(VM_KIND, 'alpha') == [3]


def test_status_command_is_offline(tmp_path: Path, capsys) -> None:
    cfg_path = _init(tmp_path)
    capsys.readouterr()
    assert _run(['status', '--config', str(cfg_path)]) == 0
    out = capsys.readouterr().out
    assert 'Fleet Status' in out
    assert str(tmp_path / 'data') in out


def test_missing_config(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match='config init'):
        StatusCLI.main(argv=False, config=str(tmp_path / 'nope.toml'))


def test_start_cli_keeps_fractional_seconds(tmp_path: Path, monkeypatch) -> None:
    cfg_path = _init(tmp_path)
    captured = {}

    def fake_start(ctx, vm_name, **kwargs):
        captured.update(kwargs, vm_name=vm_name)
        return ctx.store.write(VM_KIND, vm_name, {'vmid': 101})

    monkeypatch.setattr('pvefleet.cli.vm.start_vm', fake_start)
    argv = ['vm', 'start', 'alpha', '--wait_s', '2.5', '--poll_interval_s', '0.5', '--config', str(cfg_path)]
    assert _run(argv) == 0
    assert captured == {'vm_name': 'alpha', 'wait_s': 2.5, 'poll_interval_s': 0.5}
