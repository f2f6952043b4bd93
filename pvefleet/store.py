"""Append-only, versioned, name-addressed resource persistence.

Layout on disk::

    {root}/{model_type}/{definition_id}/{kind}/{name}/{version}/raw
    {root}/{model_type}/{definition_id}/{kind}/{name}/{version}/metadata.toml

Versions are never rewritten. Each write is staged in a hidden directory and
renamed into place, so readers only ever see complete versions.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import tomllib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .util import ensure_dir, isoformat, parse_iso, utcnow

log = logger

RAW_FILE = 'raw'
META_FILE = 'metadata.toml'


@dataclass(frozen=True)
class VersionHandle:
    kind: str
    name: str
    version: int
    path: Path

    def __str__(self) -> str:
        return f'{self.kind}/{self.name}@v{self.version}'


@dataclass(frozen=True)
class ResourceVersion:
    kind: str
    name: str
    version: int
    attributes: dict[str, Any]
    created_at: datetime
    lifetime_s: Optional[int] = None

    def age_s(self, now: Optional[datetime] = None) -> float:
        now = now or utcnow()
        return (now - self.created_at).total_seconds()

    def expired(self, now: Optional[datetime] = None) -> bool:
        if self.lifetime_s is None:
            return False
        return self.age_s(now) >= self.lifetime_s


def _check_component(value: str, what: str) -> str:
    value = str(value)
    if (
        not value
        or value in {'.', '..'}
        or '/' in value
        or '\\' in value
        or value.startswith('.')
    ):
        raise ValueError(f'Invalid resource {what}: {value!r}')
    return value


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, int):
        lines.append(f'{key} = {val}')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


class ResourceStore:
    """Versioned records for one (model type, definition id) scope."""

    def __init__(self, root: str | Path, model_type: str, definition_id: str):
        self.root = Path(root)
        self.model_type = model_type
        self.definition_id = _check_component(definition_id, 'definition id')

    @property
    def base(self) -> Path:
        return self.root / self.model_type / self.definition_id

    def _instance_dir(self, kind: str, name: str) -> Path:
        return (
            self.base
            / _check_component(kind, 'kind')
            / _check_component(name, 'name')
        )

    def kinds(self) -> list[str]:
        if not self.base.is_dir():
            return []
        return sorted(
            p.name
            for p in self.base.iterdir()
            if p.is_dir() and not p.name.startswith('.')
        )

    def names(self, kind: str) -> list[str]:
        kdir = self.base / _check_component(kind, 'kind')
        if not kdir.is_dir():
            return []
        return sorted(
            p.name
            for p in kdir.iterdir()
            if p.is_dir() and not p.name.startswith('.')
        )

    def versions(self, kind: str, name: str) -> list[int]:
        idir = self._instance_dir(kind, name)
        if not idir.is_dir():
            return []
        found = []
        for p in idir.iterdir():
            if p.is_dir() and p.name.isdigit():
                found.append(int(p.name))
        return sorted(found)

    def write(
        self,
        kind: str,
        name: str,
        attributes: dict[str, Any],
        *,
        lifetime_s: Optional[int] = None,
    ) -> VersionHandle:
        idir = self._instance_dir(kind, name)
        ensure_dir(idir)
        created_at = utcnow()
        staging = Path(tempfile.mkdtemp(prefix='.pending-', dir=idir))
        try:
            (staging / RAW_FILE).write_text(
                json.dumps(attributes, indent=2, sort_keys=True) + '\n',
                encoding='utf-8',
            )
            lines: list[str] = []
            _emit_toml_kv(lines, 'kind', kind)
            _emit_toml_kv(lines, 'name', name)
            _emit_toml_kv(lines, 'created_at', isoformat(created_at))
            if lifetime_s is not None:
                _emit_toml_kv(lines, 'lifetime_s', int(lifetime_s))
            (staging / META_FILE).write_text(
                '\n'.join(lines) + '\n', encoding='utf-8'
            )
            while True:
                existing = self.versions(kind, name)
                version = (existing[-1] if existing else 0) + 1
                target = idir / str(version)
                try:
                    os.rename(staging, target)
                except OSError:
                    # Another writer claimed this version number first.
                    if target.exists():
                        continue
                    raise
                break
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        handle = VersionHandle(kind, name, version, target)
        log.debug('Wrote resource {} ({})', handle, target)
        return handle

    def read(self, kind: str, name: str, version: int) -> ResourceVersion:
        vdir = self._instance_dir(kind, name) / str(int(version))
        raw = json.loads((vdir / RAW_FILE).read_text(encoding='utf-8'))
        meta = tomllib.loads((vdir / META_FILE).read_text(encoding='utf-8'))
        lifetime = meta.get('lifetime_s', None)
        return ResourceVersion(
            kind=kind,
            name=name,
            version=int(version),
            attributes=raw,
            created_at=parse_iso(str(meta['created_at'])),
            lifetime_s=None if lifetime is None else int(lifetime),
        )

    def read_latest(self, kind: str, name: str) -> ResourceVersion | None:
        found = self.versions(kind, name)
        if not found:
            return None
        return self.read(kind, name, found[-1])

    def latest_attributes(self, kind: str, name: str) -> dict[str, Any] | None:
        rec = self.read_latest(kind, name)
        return None if rec is None else rec.attributes

    def gc(self, keep: int) -> int:
        """Delete all but the newest ``keep`` versions of every resource."""
        if keep < 1:
            raise ValueError(f'Retention must be at least 1 (got {keep})')
        removed = 0
        for kind in self.kinds():
            for name in self.names(kind):
                found = self.versions(kind, name)
                idir = self._instance_dir(kind, name)
                for version in found[:-keep]:
                    shutil.rmtree(idir / str(version))
                    removed += 1
        if removed:
            log.info(
                'Removed {} old resource versions under {}', removed, self.base
            )
        return removed
