"""Session resolution: explicit credentials, cached ticket, or password login."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from loguru import logger

from .client import HypervisorClient
from .config import AUTH_TTL_S, ConnectionConfig
from .errors import AuthenticationError, ConfigurationError
from .responses import TicketData
from .store import ResourceStore, VersionHandle
from .util import isoformat, utcnow

log = logger

TICKET_PATH = '/access/ticket'


@dataclass(frozen=True)
class AuthSession:
    ticket: str
    csrf_token: str
    principal: str = ''
    obtained_at: Optional[datetime] = None


@dataclass(frozen=True)
class AuthResolution:
    session: AuthSession
    # One of: explicit, cache, password.
    source: str
    handle: Optional[VersionHandle] = None


class SessionCache:
    """Latest-version session slot on top of a :class:`ResourceStore`.

    ``put`` and ``invalidate`` append versions; nothing is overwritten.
    """

    def __init__(
        self,
        store: ResourceStore,
        *,
        kind: str = 'node',
        name: str = 'node',
        ttl_s: int = AUTH_TTL_S,
    ):
        self.store = store
        self.kind = kind
        self.name = name
        self.ttl_s = ttl_s

    def get(self, now: Optional[datetime] = None) -> AuthSession | None:
        now = now or utcnow()
        try:
            rec = self.store.read_latest(self.kind, self.name)
        except (OSError, ValueError, KeyError, tomllib.TOMLDecodeError) as ex:
            log.debug('Ignoring unreadable session cache: {}', ex)
            return None
        if rec is None:
            log.debug('No cached session under {}', self.store.base)
            return None
        attrs = rec.attributes
        if attrs.get('invalidated'):
            log.debug('Cached session was invalidated (v{})', rec.version)
            return None
        age = rec.age_s(now)
        if age >= self.ttl_s:
            log.debug(
                'Cached session v{} expired (age={}s ttl={}s)',
                rec.version,
                int(age),
                self.ttl_s,
            )
            return None
        ticket = attrs.get('ticket')
        csrf = attrs.get('csrfToken')
        if not isinstance(ticket, str) or not isinstance(csrf, str):
            log.debug('Cached session v{} is missing tokens', rec.version)
            return None
        return AuthSession(
            ticket=ticket,
            csrf_token=csrf,
            principal=str(attrs.get('username') or ''),
            obtained_at=rec.created_at,
        )

    def put(self, session: AuthSession, *, logs: str = '') -> VersionHandle:
        obtained = session.obtained_at or utcnow()
        return self.store.write(
            self.kind,
            self.name,
            {
                'ticket': session.ticket,
                'csrfToken': session.csrf_token,
                'username': session.principal,
                'logs': logs,
                'timestamp': isoformat(obtained),
            },
            lifetime_s=self.ttl_s,
        )

    def invalidate(self) -> VersionHandle:
        return self.store.write(
            self.kind,
            self.name,
            {'invalidated': True, 'timestamp': isoformat(utcnow())},
        )


def _password(conn: ConnectionConfig) -> str:
    if conn.password:
        return conn.password
    if conn.password_env:
        return os.environ.get(conn.password_env, '')
    return ''


def login(client: HypervisorClient, conn: ConnectionConfig) -> AuthSession:
    """Exchange username/password for a ticket and CSRF token."""
    password = _password(conn)
    if not conn.username or not password:
        raise ConfigurationError(
            'No auth available: no explicit ticket, no valid cached session, '
            'and no username/password. Set connection.username and '
            f'connection.password (or ${conn.password_env}), or run '
            '`pvefleet node auth` with credentials.'
        )
    principal = conn.principal
    log.info('Requesting ticket for {} from {}', principal, client.api_url)
    resp = client.request(
        'POST',
        TICKET_PATH,
        headers={'Content-Type': 'application/x-www-form-urlencoded'},
        data={'username': principal, 'password': password},
    )
    if not resp.ok:
        raise AuthenticationError(
            f'Authentication failed: {resp.status_code} - {resp.text}'
        )
    data = TicketData.from_response(resp)
    return AuthSession(
        ticket=data.ticket,
        csrf_token=data.csrf_token,
        principal=principal,
        obtained_at=utcnow(),
    )


def resolve_session(
    conn: ConnectionConfig,
    client: HypervisorClient,
    cache: Optional[SessionCache],
    *,
    skip_cache: bool = False,
    now: Optional[datetime] = None,
) -> AuthResolution:
    """Return a usable session; the first available source wins.

    1. explicit ``ticket`` + ``csrf_token`` from the connection config
    2. the cached session, unless ``skip_cache`` or older than the TTL
    3. a password login, which is persisted back into ``cache``
    """
    if conn.ticket and conn.csrf_token:
        log.debug('Using explicit session credentials')
        session = AuthSession(
            ticket=conn.ticket,
            csrf_token=conn.csrf_token,
            principal=conn.principal if conn.username else '',
        )
        return AuthResolution(session, 'explicit')

    if not skip_cache and cache is not None:
        cached = cache.get(now)
        if cached is not None:
            log.debug('Using cached session for {}', cached.principal or '?')
            return AuthResolution(cached, 'cache')

    session = login(client, conn)
    handle = None
    if cache is not None:
        handle = cache.put(session)
        log.debug('Persisted fresh session as {}', handle)
    return AuthResolution(session, 'password', handle)

