#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
SsdpSocket -- An abstract base class for an SSDP socket that can:

  1. Receive and decode SsdpDatagrams from remote nodes and deliver them to any number of async subscribers
  2. Send SsdpDatagrams to a remote multicast or unicast address

  The subscriber interface is a simple async iterator that returns a sequence of
  (SsdpSocketBinding, HostAndPort, SsdpDatagram) tuples until the socket is closed.

  Subclasses must implement add_socket_bindings() to create and bind the sockets that will be used to
  receive and send datagrams.
"""

from __future__ import annotations

import asyncio
from asyncio import Future
import socket
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .exceptions import VieraError
from .ssdp_datagram import SsdpDatagram

MAX_QUEUE_SIZE = 1000

class SsdpSocketBinding:
    """
    The binding of an SsdpSocket to a single low-level datagram socket (typically one per
    network interface).

    Instances are created before loop.create_datagram_endpoint(), and are later attached to
    the _SsdpSocketProtocol it creates.
    """

    ssdp_socket: Optional[SsdpSocket] = None
    """The SsdpSocket that owns this binding"""

    index: int = -1
    """The index of this binding within SsdpSocket. -1 until it is added."""

    sock: Optional[socket.socket] = None
    """The low-level socket"""

    transport: Optional[asyncio.DatagramTransport] = None
    """The asyncio transport, set once the endpoint is created"""

    unicast_addr: HostAndPort
    """The local address and port of the socket"""

    def __init__(self, sock: socket.socket):
        self.sock = sock
        unicast_addr = sock.getsockname()
        assert isinstance(unicast_addr, tuple)
        self.unicast_addr = (unicast_addr[0], unicast_addr[1])

    def attach(self, ssdp_socket: SsdpSocket, index: int) -> None:
        if self.index >= 0:
            raise VieraError(f"Attempt to reattach SsdpSocketBinding: {self}")
        self.ssdp_socket = ssdp_socket
        self.index = index

    def sendto(self, datagram: SsdpDatagram, addr: HostAndPort) -> None:
        logger.debug(f"Sending SsdpDatagram via {self} to {addr}: {datagram}")
        assert self.transport is not None
        self.transport.sendto(datagram.raw_data, addr)

    def __str__(self) -> str:
        return f"SsdpSocketBinding({self.index}: {self.unicast_addr})"

    def __repr__(self) -> str:
        return str(self)

class _SsdpSocketProtocol(asyncio.DatagramProtocol):
    """Adapter between one asyncio datagram transport and its SsdpSocket."""

    socket_binding: SsdpSocketBinding

    def __init__(self, socket_binding: SsdpSocketBinding):
        self.socket_binding = socket_binding

    @property
    def ssdp_socket(self) -> SsdpSocket:
        assert self.socket_binding.ssdp_socket is not None
        return self.socket_binding.ssdp_socket

    def connection_made(self, transport: asyncio.BaseTransport):
        # datagram transports do not inherit from asyncio.DatagramTransport
        self.socket_binding.transport = transport # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.ssdp_socket.datagram_received(self.socket_binding, (addr[0], addr[1]), data)

    def error_received(self, exc: Exception):
        self.ssdp_socket.error_received(self.socket_binding, exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.ssdp_socket.connection_lost(self.socket_binding, exc)
        self.socket_binding.transport = None

class SsdpDatagramSubscriber(
        AsyncContextManager['SsdpDatagramSubscriber'],
        AsyncIterable[Tuple[SsdpSocketBinding, HostAndPort, SsdpDatagram]]
      ):
    ssdp_socket: SsdpSocket
    queue: asyncio.Queue[Optional[Tuple[SsdpSocketBinding, HostAndPort, SsdpDatagram]]]
    eos: bool = False
    eos_exc: Optional[Exception] = None

    def __init__(self, ssdp_socket: SsdpSocket, max_queue_size: int=MAX_QUEUE_SIZE):
        self.ssdp_socket = ssdp_socket
        self.queue = asyncio.Queue(max_queue_size)

    async def __aenter__(self) -> SsdpDatagramSubscriber:
        self.ssdp_socket.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.ssdp_socket.remove_subscriber(self)
        self.on_end_of_stream()
        return False

    async def receive(self) -> Optional[Tuple[SsdpSocketBinding, HostAndPort, SsdpDatagram]]:
        """Returns the next (binding, source address, datagram), or None at end of stream.

        Raises the transport error that ended the stream, if any.
        """
        if self.eos and self.queue.empty():
            if self.eos_exc is not None:
                raise self.eos_exc
            return None
        result = await self.queue.get()
        self.queue.task_done()
        if result is None and self.eos_exc is not None:
            raise self.eos_exc
        return result

    async def iter_datagrams(self) -> AsyncIterator[Tuple[SsdpSocketBinding, HostAndPort, SsdpDatagram]]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[Tuple[SsdpSocketBinding, HostAndPort, SsdpDatagram]]:
        return self.iter_datagrams()

    def on_datagram(self, socket_binding: SsdpSocketBinding, addr: HostAndPort, datagram: SsdpDatagram) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait((socket_binding, addr, datagram))
            except asyncio.QueueFull:
                logger.warning(f"Queue full, dropping datagram from {socket_binding} {addr}: {datagram}")

    def on_end_of_stream(self, exc: Optional[Exception]=None) -> None:
        if not self.eos:
            self.eos = True
            self.eos_exc = exc
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

class SsdpSocket(AsyncContextManager['SsdpSocket'], ABC):
    """
    An abstract async SSDP socket over one or more low-level datagram sockets.

    Received datagrams are decoded and fanned out to every SsdpDatagramSubscriber.
    """

    socket_bindings: List[SsdpSocketBinding]
    """One binding per low-level socket in use"""

    final_result: Future[None]
    """A future that is set when the socket is stopped"""

    datagram_subscribers: Set[SsdpDatagramSubscriber]
    """Subscribers that wish to receive datagrams"""

    def __init__(self):
        self.socket_bindings = []
        self.datagram_subscribers = set()

    def add_subscriber(self, subscriber: SsdpDatagramSubscriber) -> None:
        self.datagram_subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: SsdpDatagramSubscriber) -> None:
        self.datagram_subscribers.discard(subscriber)

    def add_socket_binding(self, socket_binding: SsdpSocketBinding) -> None:
        i = len(self.socket_bindings)
        socket_binding.attach(self, i)
        self.socket_bindings.append(socket_binding)
        logger.debug(f"Added socket binding {i}: {socket_binding}")

    @abstractmethod
    async def add_socket_bindings(self) -> None:
        """Creates and binds the low-level sockets (typically one per interface), and adds
           them with self.add_socket_binding(). Must be overridden by subclasses."""
        raise NotImplementedError()

    async def start(self) -> None:
        self.final_result = asyncio.get_running_loop().create_future()
        try:
            loop = asyncio.get_running_loop()
            await self.add_socket_bindings()
            if len(self.socket_bindings) == 0:
                raise VieraError("No datagram sockets were added to SsdpSocket")
            for socket_binding in self.socket_bindings:
                await loop.create_datagram_endpoint(
                    lambda: _SsdpSocketProtocol(socket_binding),
                    sock=socket_binding.sock
                  )
                logger.debug(f"Created datagram endpoint for {socket_binding}")
        except BaseException as e:
            self.set_final_exception(e)
            raise

    def datagram_received(self, socket_binding: SsdpSocketBinding, addr: HostAndPort, data: bytes) -> None:
        try:
            datagram = SsdpDatagram(raw_data=data)
        except Exception as e:
            logger.warning(f"Error parsing datagram from {addr}, raw=[{data!r}]: {e}")
            return
        logger.debug(f"Received datagram from {socket_binding} {addr}: {datagram}")
        for subscriber in list(self.datagram_subscribers):
            subscriber.on_datagram(socket_binding, addr, datagram)

    def error_received(self, socket_binding: SsdpSocketBinding, exc: Exception) -> None:
        # ICMP errors on one interface do not end the search
        logger.info(f"Error received from transport {socket_binding}: {exc}")

    def connection_lost(self, socket_binding: SsdpSocketBinding, exc: Optional[Exception]) -> None:
        logger.debug(f"Connection to transport lost on {socket_binding}, exc={exc}")
        if exc is not None:
            for subscriber in list(self.datagram_subscribers):
                subscriber.on_end_of_stream(exc)

    def _close_all(self) -> None:
        for socket_binding in self.socket_bindings:
            if socket_binding.transport is not None:
                socket_binding.transport.close()
                socket_binding.transport = None
            elif socket_binding.sock is not None:
                socket_binding.sock.close()
            socket_binding.sock = None
        for subscriber in list(self.datagram_subscribers):
            subscriber.on_end_of_stream()

    def set_final_exception(self, exc: BaseException) -> None:
        if not self.final_result.done():
            logger.debug(f"SsdpSocket: Setting final exception: {exc!r}")
            if isinstance(exc, Exception):
                self.final_result.set_exception(exc)
                # retrieved here so an unawaited future does not log
                self.final_result.exception()
            else:
                self.final_result.cancel()
        self._close_all()

    def set_final_result(self) -> None:
        if not self.final_result.done():
            logger.debug("SsdpSocket: Setting final result to success")
            self.final_result.set_result(None)
        self._close_all()

    async def stop(self) -> None:
        self.set_final_result()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        if exc is None:
            self.set_final_result()
        else:
            self.set_final_exception(exc)
        return False
