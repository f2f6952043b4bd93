"""Guest-agent IPv4 discovery with a bounded wait window."""

from __future__ import annotations

import ipaddress
from time import monotonic, sleep
from typing import Optional

from loguru import logger

from .auth import AuthSession
from .client import HypervisorClient
from .errors import HypervisorRequestError, UnexpectedResponseError
from .responses import GuestInterface, parse_guest_interfaces

log = logger

LOOPBACK_IFACE = 'lo'


def first_guest_ipv4(interfaces: list[GuestInterface]) -> Optional[str]:
    for iface in interfaces:
        if iface.name == LOOPBACK_IFACE:
            continue
        for addr in iface.ipv4:
            try:
                parsed = ipaddress.IPv4Address(addr)
            except ValueError:
                continue
            if parsed.is_loopback:
                continue
            return addr
    return None


def discover_guest_ip(
    client: HypervisorClient,
    node: str,
    vmid: int,
    session: AuthSession,
    *,
    wait_s: float = 120,
    poll_interval_s: float = 5,
) -> Optional[str]:
    """Poll the guest agent until it reports a usable IPv4 address.

    The agent usually lags the VM boot, so failed or malformed responses
    only mean "not ready yet". Returns ``None`` once ``wait_s`` elapses.
    """
    path = f'/nodes/{node}/qemu/{vmid}/agent/network-get-interfaces'
    deadline = monotonic() + wait_s
    attempts = 0
    while monotonic() < deadline:
        attempts += 1
        try:
            resp = client.call('GET', path, session)
            if resp.ok:
                ip = first_guest_ipv4(parse_guest_interfaces(resp))
                if ip:
                    log.debug(
                        'Guest agent for vmid {} reported {} (attempt {})',
                        vmid,
                        ip,
                        attempts,
                    )
                    return ip
            else:
                log.debug(
                    'Guest agent for vmid {} not ready: {}',
                    vmid,
                    resp.status_code,
                )
        except (HypervisorRequestError, UnexpectedResponseError) as ex:
            log.debug('Guest agent for vmid {} not ready: {}', vmid, ex)
        sleep(poll_interval_s)
    log.debug(
        'No guest IP for vmid {} after {}s ({} attempts)',
        vmid,
        wait_s,
        attempts,
    )
    return None
