"""Tests for session resolution and the session cache."""

from __future__ import annotations

from datetime import timedelta

import pytest

from fakes import error, reply
from pvefleet.auth import AuthSession, resolve_session
from pvefleet.errors import AuthenticationError, ConfigurationError
from pvefleet.util import utcnow

TICKET_REPLY = {'ticket': 'PVE:root@pam:NEW', 'CSRFPreventionToken': 'NEWCSRF'}


@pytest.fixture
def pw_ctx(ctx):
    """Context that has to log in with a password."""
    conn = ctx.cfg.connection
    conn.ticket = ''
    conn.csrf_token = ''
    conn.username = 'root'
    conn.password = 'secret'
    return ctx


def test_explicit_credentials_skip_network(ctx, hv) -> None:
    res = ctx.session()
    assert res.source == 'explicit'
    assert res.session.ticket == 'PVE:root@pam:TICKET'
    assert hv.calls == []
    assert ctx.sessions.store.versions('node', 'node') == []


def test_password_login_is_persisted(pw_ctx, hv) -> None:
    hv.route('POST', '/access/ticket', reply(TICKET_REPLY))
    res = pw_ctx.session()
    assert res.source == 'password'
    assert res.session.csrf_token == 'NEWCSRF'
    assert res.handle is not None and res.handle.version == 1
    call = hv.calls[0]
    assert call.data == {'username': 'root@pam', 'password': 'secret'}
    attrs = pw_ctx.sessions.store.latest_attributes('node', 'node')
    assert attrs['ticket'] == 'PVE:root@pam:NEW'
    assert attrs['csrfToken'] == 'NEWCSRF'
    assert attrs['username'] == 'root@pam'


def test_fresh_cache_means_no_login(pw_ctx, hv) -> None:
    pw_ctx.sessions.put(AuthSession('CACHED', 'CC', 'root@pam'))
    res = pw_ctx.session()
    assert res.source == 'cache'
    assert res.session.ticket == 'CACHED'
    assert hv.calls == []


def test_expired_cache_triggers_login(pw_ctx, hv) -> None:
    hv.route('POST', '/access/ticket', reply(TICKET_REPLY))
    pw_ctx.sessions.put(AuthSession('OLD', 'OC', 'root@pam'))
    later = utcnow() + timedelta(hours=2, seconds=1)
    res = resolve_session(
        pw_ctx.cfg.connection, pw_ctx.client, pw_ctx.sessions, now=later
    )
    assert res.source == 'password'
    assert hv.count('POST', '/access/ticket') == 1
    assert pw_ctx.sessions.store.versions('node', 'node') == [1, 2]


def test_skip_cache_forces_login(pw_ctx, hv) -> None:
    hv.route('POST', '/access/ticket', reply(TICKET_REPLY))
    pw_ctx.sessions.put(AuthSession('CACHED', 'CC'))
    res = pw_ctx.session(skip_cache=True)
    assert res.source == 'password'
    assert res.session.ticket == 'PVE:root@pam:NEW'


def test_invalidated_cache_is_ignored(pw_ctx) -> None:
    pw_ctx.sessions.put(AuthSession('CACHED', 'CC'))
    pw_ctx.sessions.invalidate()
    assert pw_ctx.sessions.get() is None


def test_password_from_environment(pw_ctx, hv, monkeypatch) -> None:
    pw_ctx.cfg.connection.password = ''
    monkeypatch.setenv('PVEFLEET_PASSWORD', 'from-env')
    hv.route('POST', '/access/ticket', reply(TICKET_REPLY))
    pw_ctx.session()
    assert hv.calls[0].data['password'] == 'from-env'


def test_missing_credentials(ctx, hv) -> None:
    ctx.cfg.connection.ticket = ''
    ctx.cfg.connection.csrf_token = ''
    with pytest.raises(ConfigurationError, match='No auth available'):
        ctx.session()
    assert hv.calls == []


def test_rejected_login(pw_ctx, hv) -> None:
    hv.route('POST', '/access/ticket', error(401, 'authentication failure'))
    with pytest.raises(AuthenticationError, match='401 - authentication failure'):
        pw_ctx.session()
    assert pw_ctx.sessions.store.versions('node', 'node') == []
