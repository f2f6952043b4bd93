from __future__ import annotations

from pathlib import Path

import pytest

from fakes import NODE, FakeClock, FakeHypervisor
from pvefleet.config import FleetConfig
from pvefleet.context import FleetContext


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    fake = FakeClock()
    for mod in ('pvefleet.tasks', 'pvefleet.guest'):
        monkeypatch.setattr(f'{mod}.monotonic', fake.monotonic)
        monkeypatch.setattr(f'{mod}.sleep', fake.sleep)
    return fake


@pytest.fixture
def hv() -> FakeHypervisor:
    return FakeHypervisor()


@pytest.fixture
def cfg(tmp_path: Path, monkeypatch) -> FleetConfig:
    monkeypatch.delenv('PVEFLEET_PASSWORD', raising=False)
    cfg = FleetConfig()
    cfg.connection.api_url = 'https://pve.test:8006'
    cfg.connection.node = NODE
    cfg.connection.ticket = 'PVE:root@pam:TICKET'
    cfg.connection.csrf_token = 'CSRF'
    cfg.store.data_dir = str(tmp_path / 'data')
    return cfg


@pytest.fixture
def ctx(cfg: FleetConfig, hv: FakeHypervisor, clock: FakeClock) -> FleetContext:
    return FleetContext.from_config(cfg, client=hv)
