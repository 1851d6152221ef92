# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""TCP reachability probing and wake-on-LAN"""

from __future__ import annotations

import asyncio

import wakeonlan

from .internal_types import *
from .pkg_logging import logger
from .constants import LIVENESS_PROBE_TIMEOUT, WOL_PORT, WOL_BROADCAST_ADDRESS
from .util import normalize_mac_address

async def liveness_probe(host: str, port: int, timeout: float=LIVENESS_PROBE_TIMEOUT) -> bool:
    """Returns True if a TCP connection to host:port can be opened within timeout seconds."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.debug(f"Liveness probe of {host}:{port} failed: {e!r}")
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True

def create_magic_packet(mac_address: str) -> bytes:
    """Returns the wake-on-LAN packet for mac_address: six 0xFF bytes then the MAC repeated 16 times."""
    return wakeonlan.create_magic_packet(normalize_mac_address(mac_address))

def wake_on_lan(mac_address: str, host: Optional[str]=None, port: int=WOL_PORT) -> None:
    """Sends a wake-on-LAN packet to host (if given) and to the broadcast address.

    Raises InvalidArgument if mac_address is not a valid MAC address.
    """
    mac = normalize_mac_address(mac_address)
    targets = [ WOL_BROADCAST_ADDRESS ] if host is None else [ host, WOL_BROADCAST_ADDRESS ]
    for target in targets:
        logger.debug(f"Sending wake-on-LAN packet for {mac} to {target}:{port}")
        wakeonlan.send_magic_packet(mac, ip_address=target, port=port)
