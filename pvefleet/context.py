"""Everything one lifecycle operation needs, wired from configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .auth import AuthResolution, SessionCache, resolve_session
from .client import HypervisorClient
from .config import NODE_MODEL_TYPE, VM_MODEL_TYPE, FleetConfig
from .locks import KeyedLocks
from .store import ResourceStore


@dataclass
class FleetContext:
    cfg: FleetConfig
    client: HypervisorClient
    store: ResourceStore
    node_store: ResourceStore
    sessions: SessionCache
    locks: KeyedLocks = field(default_factory=KeyedLocks)

    @property
    def node(self) -> str:
        return self.cfg.connection.node

    @classmethod
    def from_config(
        cls,
        cfg: FleetConfig,
        *,
        client: Optional[HypervisorClient] = None,
    ) -> 'FleetContext':
        cfg = cfg.expanded_paths()
        conn = cfg.connection
        if client is None:
            client = HypervisorClient(
                conn.api_url,
                skip_tls_verify=bool(conn.skip_tls_verify),
                timeout_s=conn.request_timeout_s,
            )
        root = Path(cfg.store.data_dir)
        defid = cfg.store.definition_id
        store = ResourceStore(root, VM_MODEL_TYPE, defid)
        node_store = ResourceStore(root, NODE_MODEL_TYPE, defid)
        cache_store = ResourceStore(
            root, cfg.auth.cache_model_type, cfg.cache_definition_id
        )
        sessions = SessionCache(cache_store, ttl_s=cfg.auth.ttl_s)
        return cls(
            cfg=cfg,
            client=client,
            store=store,
            node_store=node_store,
            sessions=sessions,
        )

    def session(self, *, skip_cache: bool = False) -> AuthResolution:
        return resolve_session(
            self.cfg.connection,
            self.client,
            self.sessions,
            skip_cache=skip_cache,
        )
