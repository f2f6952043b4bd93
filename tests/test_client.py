"""Tests for the HTTP transport."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import requests

from pvefleet.auth import AuthSession
from pvefleet.client import HttpResponse, HypervisorClient, auth_headers
from pvefleet.errors import HypervisorRequestError, UnexpectedResponseError


class RecordingSession:
    def __init__(self, status_code=200, text='{"data": null}', exc=None):
        self.status_code = status_code
        self.text = text
        self.exc = exc
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.exc is not None:
            raise self.exc
        return SimpleNamespace(
            status_code=self.status_code, headers={}, text=self.text
        )


def test_url_joins_api_prefix() -> None:
    client = HypervisorClient('https://pve:8006/', session=RecordingSession())
    assert client.url('/nodes/pve/qemu') == 'https://pve:8006/api2/json/nodes/pve/qemu'


def test_error_status_is_returned_not_raised() -> None:
    sess = RecordingSession(status_code=500, text='boom')
    client = HypervisorClient('https://pve:8006', session=sess)
    resp = client.request('GET', '/version')
    assert resp.status_code == 500
    assert not resp.ok
    assert resp.text == 'boom'


def test_transport_failure_raises() -> None:
    sess = RecordingSession(exc=requests.ConnectionError('refused'))
    client = HypervisorClient('https://pve:8006', session=sess)
    with pytest.raises(HypervisorRequestError, match='refused'):
        client.request('GET', '/version')


def test_tls_verification_follows_flag() -> None:
    sess = RecordingSession()
    HypervisorClient('https://pve:8006', session=sess).request('GET', '/x')
    HypervisorClient(
        'https://pve:8006', skip_tls_verify=False, timeout_s=5, session=sess
    ).request('GET', '/x')
    assert sess.calls[0][2]['verify'] is False
    assert sess.calls[1][2]['verify'] is True
    assert sess.calls[1][2]['timeout'] == 5


def test_csrf_header_only_on_mutations() -> None:
    session = AuthSession(ticket='T', csrf_token='C')
    assert auth_headers(session, 'GET') == {'Cookie': 'PVEAuthCookie=T'}
    post = auth_headers(session, 'post')
    assert post['CSRFPreventionToken'] == 'C'
    assert post['Cookie'] == 'PVEAuthCookie=T'


def test_call_sends_auth_headers_and_form_data() -> None:
    sess = RecordingSession()
    client = HypervisorClient('https://pve:8006', session=sess)
    client.call(
        'PUT',
        '/nodes/pve/qemu/100/config',
        AuthSession('T', 'C'),
        data={'boot': 'order=net0'},
    )
    method, url, kwargs = sess.calls[0]
    assert method == 'PUT'
    assert url.endswith('/nodes/pve/qemu/100/config')
    assert kwargs['headers']['CSRFPreventionToken'] == 'C'
    assert kwargs['data'] == {'boot': 'order=net0'}


def test_non_json_body() -> None:
    resp = HttpResponse(502, {}, '<html>bad gateway</html>')
    with pytest.raises(UnexpectedResponseError, match='not JSON'):
        resp.json()
