# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery of VIERA televisions on the LAN.

SsdpClient sends an M-SEARCH for the network remote control service to the SSDP multicast
group (239.255.255.250:1900) from every local interface and collects the unicast responses.
TelevisionDiscovery turns those responses into deduplicated DiscoveredDevices, checking that
each one is reachable and reading what it can about it.
"""

from __future__ import annotations

import asyncio
import socket
import sys
import time

from .internal_types import *
from .pkg_logging import logger
from .constants import SSDP_MULTICAST_ADDRESS, SSDP_PORT, SSDP_SEARCH_TARGET
from .exceptions import TelevisionApiError
from .client_config import TelevisionClientConfig
from .models import DeviceIdentity, DiscoveredDevice
from .ssdp_datagram import SsdpDatagram
from .ssdp_socket import SsdpSocket, SsdpSocketBinding, SsdpDatagramSubscriber
from .television import Television
from .util import get_local_ip_addresses

class SsdpResponseInfo:
    socket_binding: SsdpSocketBinding
    """The socket binding on which the response was received"""

    src_addr: HostAndPort
    """The source address of the response"""

    datagram: SsdpDatagram
    """The response datagram"""

    monotonic_time: float
    """time.monotonic() when the response was received"""

    def __init__(self, socket_binding: SsdpSocketBinding, src_addr: HostAndPort, datagram: SsdpDatagram):
        self.socket_binding = socket_binding
        self.src_addr = src_addr
        self.datagram = datagram
        self.monotonic_time = time.monotonic()

    def __str__(self) -> str:
        return f"SsdpResponseInfo(src_addr={self.src_addr}, datagram={self.datagram})"

    def __repr__(self) -> str:
        return str(self)

class SsdpSearchRequest(
        AsyncContextManager['SsdpSearchRequest'],
        AsyncIterable[SsdpResponseInfo]
      ):
    """A single M-SEARCH on an SsdpClient and the responses received within response_wait_time,
       behind an AsyncContextManager/AsyncIterable interface."""

    ssdp_client: SsdpClient
    search_target: str
    response_wait_time: float
    dg_subscriber: SsdpDatagramSubscriber
    end_time: float = 0.0

    def __init__(self, ssdp_client: SsdpClient, search_target: str=SSDP_SEARCH_TARGET, response_wait_time: Optional[float]=None):
        self.ssdp_client = ssdp_client
        self.search_target = search_target
        self.response_wait_time = ssdp_client.response_wait_time if response_wait_time is None else response_wait_time
        self.dg_subscriber = SsdpDatagramSubscriber(ssdp_client)

    async def __aenter__(self) -> SsdpSearchRequest:
        # subscribe before sending so that no response is missed
        await self.dg_subscriber.__aenter__()
        try:
            search_datagram = SsdpDatagram.create_search(self.search_target)
            for socket_binding in self.ssdp_client.socket_bindings:
                socket_binding.sendto(search_datagram, (self.ssdp_client.multicast_address, self.ssdp_client.multicast_port))
            self.end_time = time.monotonic() + self.response_wait_time
        except BaseException as e:
            await self.dg_subscriber.__aexit__(type(e), e, e.__traceback__)
            raise
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        return await self.dg_subscriber.__aexit__(exc_type, exc, tb)

    async def iter_responses(self) -> AsyncIterator[SsdpResponseInfo]:
        while True:
            remaining_time = self.end_time - time.monotonic()
            if remaining_time <= 0.0:
                break
            try:
                resp_tuple = await asyncio.wait_for(self.dg_subscriber.receive(), remaining_time)
            except asyncio.TimeoutError:
                break
            if resp_tuple is None:
                break
            socket_binding, addr, datagram = resp_tuple
            if not datagram.is_response:
                # our own M-SEARCH looped back, or another host's search
                continue
            yield SsdpResponseInfo(socket_binding, addr, datagram)

    def __aiter__(self) -> AsyncIterator[SsdpResponseInfo]:
        return self.iter_responses()

class SsdpClient(SsdpSocket, AsyncContextManager['SsdpClient']):
    """
    An SSDP client that sends M-SEARCH requests from every local interface and
    receives the unicast responses.
    """

    response_wait_time: float
    """The amount of time (in seconds) to wait for responses to come in"""

    multicast_address: str
    """The address to send requests to"""

    multicast_port: int
    """The port to send requests to"""

    bind_addresses: List[str]
    """The local IP addresses to bind to"""

    def __init__(
            self,
            response_wait_time: float=TelevisionClientConfig.discovery_timeout,
            multicast_address: str=SSDP_MULTICAST_ADDRESS,
            multicast_port: int=SSDP_PORT,
            bind_addresses: Optional[Iterable[str]]=None,
            include_loopback: bool=False,
          ) -> None:
        super().__init__()
        self.response_wait_time = response_wait_time
        self.multicast_address = multicast_address
        self.multicast_port = multicast_port
        if bind_addresses is None:
            bind_addresses = get_local_ip_addresses(include_loopback=include_loopback)
        self.bind_addresses = list(bind_addresses)

    async def add_socket_bindings(self) -> None:
        logger.debug(f"Creating socket bindings to {self.bind_addresses}")
        for bind_address in self.bind_addresses:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                if sys.platform not in ( 'win32', 'cygwin' ):
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
                sock.bind((bind_address, 0))
            except OSError as e:
                sock.close()
                logger.warning(f"Could not bind SSDP socket to {bind_address}: {e}")
                continue
            sock.setblocking(False)
            self.add_socket_binding(SsdpSocketBinding(sock))

    def search(self, search_target: str=SSDP_SEARCH_TARGET, response_wait_time: Optional[float]=None) -> SsdpSearchRequest:
        """Create an async context manager/iterable that sends an M-SEARCH and returns the responses
           as they arrive.

        Usage:
            async with ssdp_client.search() as search_request:
                async for response in search_request:
                    print(response.datagram.hdr_location)
        """
        return SsdpSearchRequest(self, search_target=search_target, response_wait_time=response_wait_time)

    async def __aenter__(self) -> SsdpClient:
        await super().__aenter__()
        return self

def parse_search_response(info: SsdpResponseInfo) -> Optional[DiscoveredDevice]:
    """Extracts the device id and location from a search response, or returns None if either is missing."""
    device_id = info.datagram.device_id
    host_and_port = info.datagram.location_host_and_port
    if device_id is None or host_and_port is None:
        logger.debug(f"Ignoring SSDP response without USN or LOCATION from {info.src_addr}")
        return None
    host, port = host_and_port
    return DiscoveredDevice(device_id, host, port)

class TelevisionDiscovery(
        AsyncContextManager['TelevisionDiscovery'],
        AsyncIterable[DiscoveredDevice]
      ):
    """
    Finds televisions for a fixed time window and yields each one once.

    Devices are deduplicated by (host, id). Each new device is liveness probed and
    dropped silently if unreachable. Reachable devices are enriched concurrently: the
    device description is always attempted, and the application list is read if the
    television does not require encryption and its screen is on. Enrichment failures
    are logged and the device is still yielded with what was learned.

    Leaving the context (or the iteration) early cancels any pending probes and closes
    all sockets.

    Usage:
        async with TelevisionDiscovery(timeout=5.0) as discovery:
            async for device in discovery:
                print(device.host, device.specs)
    """

    config: TelevisionClientConfig
    timeout: float
    enrich: bool
    ssdp_client_factory: Callable[[float], SsdpClient]

    _iterator: Optional[AsyncGenerator[DiscoveredDevice, None]] = None

    def __init__(
            self,
            timeout: Optional[float]=None,
            config: Optional[TelevisionClientConfig]=None,
            enrich: bool=True,
            ssdp_client_factory: Optional[Callable[[float], SsdpClient]]=None,
          ):
        """Create a discovery run.

        Parameters:
            timeout:              How long to collect responses, in seconds. Defaults to config.discovery_timeout.
            config:               Client settings used for probing and enrichment.
            enrich:               If False, devices are yielded as soon as they answer the liveness probe.
            ssdp_client_factory:  Creates the SsdpClient given the response wait time. Defaults to
                                  an SsdpClient on all non-loopback interfaces.
        """
        self.config = TelevisionClientConfig() if config is None else config
        self.timeout = self.config.discovery_timeout if timeout is None else timeout
        self.enrich = enrich
        self.ssdp_client_factory = (lambda wait_time: SsdpClient(response_wait_time=wait_time)) if ssdp_client_factory is None else ssdp_client_factory

    async def __aenter__(self) -> TelevisionDiscovery:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        if self._iterator is not None:
            await self._iterator.aclose()
            self._iterator = None
        return False

    def __aiter__(self) -> AsyncIterator[DiscoveredDevice]:
        self._iterator = self.iter_devices()
        return self._iterator

    async def iter_devices(self) -> AsyncGenerator[DiscoveredDevice, None]:
        queue: asyncio.Queue[Optional[DiscoveredDevice]] = asyncio.Queue()
        probes: Set[asyncio.Task[None]] = set()
        seen: Set[Tuple[str, str]] = set()

        async with self.ssdp_client_factory(self.timeout) as ssdp_client:
            async with ssdp_client.search(response_wait_time=self.timeout) as search_request:

                async def collect() -> None:
                    try:
                        async for info in search_request:
                            device = parse_search_response(info)
                            if device is None:
                                continue
                            key = (device.host, device.id)
                            if key in seen:
                                continue
                            seen.add(key)
                            logger.debug(f"Found {device} at {info.src_addr}")
                            probes.add(asyncio.create_task(self._probe(device, queue)))
                        results = await asyncio.gather(*probes, return_exceptions=True)
                        for result in results:
                            if isinstance(result, Exception):
                                logger.warning(f"Probing a discovered television failed: {result!r}")
                    finally:
                        queue.put_nowait(None)

                collector = asyncio.create_task(collect())
                try:
                    while True:
                        device = await queue.get()
                        if device is None:
                            break
                        yield device
                    await collector
                finally:
                    for task in [ collector, *probes ]:
                        task.cancel()
                    await asyncio.gather(collector, *probes, return_exceptions=True)

    async def _probe(self, device: DiscoveredDevice, queue: asyncio.Queue[Optional[DiscoveredDevice]]) -> None:
        tv = Television(DeviceIdentity(device.id, device.host, device.port), config=self.config)
        try:
            if not await tv.liveness_probe():
                logger.info(f"Discovered television {device.host}:{device.port} is unreachable")
                return
            if self.enrich:
                await self._enrich(tv, device)
        finally:
            await tv.disconnect()
        queue.put_nowait(device)

    async def _enrich(self, tv: Television, device: DiscoveredDevice) -> None:
        try:
            device.specs = await tv.get_specs()
        except TelevisionApiError as e:
            logger.warning(f"Could not read description of {device}: {e}")
            return
        if device.specs.requires_encryption:
            return
        try:
            device.is_turned_on = await tv.is_turned_on()
            if device.is_turned_on:
                device.applications = await tv.get_apps()
        except TelevisionApiError as e:
            logger.warning(f"Could not read applications of {device}: {e}")

async def discover(
        timeout: Optional[float]=None,
        config: Optional[TelevisionClientConfig]=None,
        enrich: bool=True,
      ) -> List[DiscoveredDevice]:
    """Runs discovery for the whole time window and returns every device found.

    Early-out/incremental results can be obtained by iterating a TelevisionDiscovery instead.
    """
    results: List[DiscoveredDevice] = []
    async with TelevisionDiscovery(timeout=timeout, config=config, enrich=enrich) as discovery:
        async for device in discovery:
            results.append(device)
    return results
