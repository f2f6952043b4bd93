"""HTTP transport to the hypervisor REST API."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Optional

import requests
import urllib3
from loguru import logger

from .errors import HypervisorRequestError, UnexpectedResponseError

if TYPE_CHECKING:
    from .auth import AuthSession

log = logger

API_PREFIX = '/api2/json'


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    text: str = ''

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as ex:
            raise UnexpectedResponseError(
                f'Response body is not JSON (status={self.status_code}): '
                f'{self.text[:200]!r}'
            ) from ex


def auth_headers(session: 'AuthSession', method: str) -> dict[str, str]:
    headers = {'Cookie': f'PVEAuthCookie={session.ticket}'}
    if method.upper() != 'GET' and session.csrf_token:
        headers['CSRFPreventionToken'] = session.csrf_token
    return headers


class HypervisorClient:
    """Thin wrapper around a requests session for one API endpoint.

    HTTP error statuses are returned to the caller untouched; only transport
    failures raise.
    """

    def __init__(
        self,
        api_url: str,
        *,
        skip_tls_verify: bool = True,
        timeout_s: float = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip('/')
        self.skip_tls_verify = skip_tls_verify
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        if skip_tls_verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def url(self, path: str) -> str:
        return f'{self.api_url}{API_PREFIX}{path}'

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        url = self.url(path)
        log.opt(depth=1).debug('HTTP {} {}', method, url)
        try:
            resp = self.session.request(
                method,
                url,
                headers=dict(headers or {}),
                data=dict(data) if data else None,
                verify=not self.skip_tls_verify,
                timeout=self.timeout_s,
            )
        except requests.RequestException as ex:
            log.opt(depth=1).error('HTTP {} {} failed: {}', method, url, ex)
            raise HypervisorRequestError(
                f'{method} {url} failed: {ex}'
            ) from ex
        log.opt(depth=1).debug(
            'HTTP {} {} -> {}', method, url, resp.status_code
        )
        return HttpResponse(resp.status_code, dict(resp.headers), resp.text)

    def call(
        self,
        method: str,
        path: str,
        session: 'AuthSession',
        *,
        data: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """Issue an authenticated request using ``session`` credentials."""
        return self.request(
            method, path, headers=auth_headers(session, method), data=data
        )
