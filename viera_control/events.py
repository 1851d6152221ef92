# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
EventSubscriber -- A UPnP GENA event subscriber for one television that can:

  1. Run a local HTTP listener on an ephemeral port to receive NOTIFY requests
  2. SUBSCRIBE, renew and UNSUBSCRIBE with the television's event endpoint
  3. Decode screen state and input mode changes into TvEvents and deliver them to
     callbacks and to any number of async subscribers

  Subscription failures are not fatal: they are logged and reported as False.
"""

from __future__ import annotations

import asyncio
import inspect
import re

from .internal_types import *
from .pkg_logging import logger
from .constants import EVENTS_TIMEOUT, UNSUBSCRIBE_TIMEOUT, URL_EVENT_NRC
from .exceptions import TelevisionApiCall
from .models import TvEvent
from .client import TelevisionApiClient, ApiRequest
from .util import (
    split_bytes_at_lf_or_crlf,
    parse_http_headers,
    has_complete_headers,
    get_callback_ip_address,
  )

MAX_QUEUE_SIZE = 100

MAX_HEADER_SIZE = 16384

NOTIFY_REPLY = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/xml; charset=\"utf-8\"\r\n"
    b"Content-Length: 0\r\n"
    b"\r\n"
  )

_screen_state_re = re.compile(r'<X_ScreenState>(\w+)</X_ScreenState>')
_input_mode_re = re.compile(r'<X_InputMode>(\w+)</X_InputMode>')

TvEventCallback = Callable[[TvEvent], Any]
"""A plain callable, or a coroutine function whose coroutines are scheduled on the running loop"""

class TvEventSubscriber(
        AsyncContextManager['TvEventSubscriber'],
        AsyncIterable[TvEvent]
      ):
    """An async iterator over the TvEvents received by an EventSubscriber, from the moment it is entered
       until it is exited or the EventSubscriber is closed.

    Usage:
        async with event_subscriber.subscriber() as events:
            async for event in events:
                print(event.screen_state)
    """

    event_subscriber: EventSubscriber
    queue: asyncio.Queue[Optional[TvEvent]]
    eos: bool = False

    def __init__(self, event_subscriber: EventSubscriber, max_queue_size: int=MAX_QUEUE_SIZE):
        self.event_subscriber = event_subscriber
        self.queue = asyncio.Queue(max_queue_size)

    async def __aenter__(self) -> TvEventSubscriber:
        self.event_subscriber.add_queue_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.event_subscriber.remove_queue_subscriber(self)
        self.on_end_of_stream()
        return False

    async def receive(self, timeout: Optional[float]=None) -> Optional[TvEvent]:
        """Returns the next event, or None at end of stream. Raises asyncio.TimeoutError if timeout elapses."""
        if self.eos and self.queue.empty():
            return None
        result = await asyncio.wait_for(self.queue.get(), timeout)
        self.queue.task_done()
        return result

    async def iter_events(self) -> AsyncIterator[TvEvent]:
        while True:
            event = await self.receive()
            if event is None:
                break
            yield event

    def __aiter__(self) -> AsyncIterator[TvEvent]:
        return self.iter_events()

    def on_event(self, event: TvEvent) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Queue full, dropping event {event}")

    def on_end_of_stream(self) -> None:
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

class EventSubscriber:
    """
    Manages the GENA subscription to a television's network remote control events.

    The last screen state and input mode are remembered across events, so each TvEvent
    carries the full known state even when a NOTIFY reports only one of them.
    """

    client: TelevisionApiClient
    """The client used to send SUBSCRIBE and UNSUBSCRIBE"""

    lease: int
    """The subscription lease requested, in seconds"""

    listen_host: str
    """The local address the NOTIFY listener binds to"""

    callback_host: Optional[str]
    """The address advertised in the CALLBACK header. If None, it is chosen from the local interfaces."""

    sid: Optional[str] = None
    """The subscription id issued by the television, or None if not subscribed"""

    screen_state: Optional[bool] = None
    """The last screen state reported, or None if none has been"""

    input_mode: Optional[str] = None
    """The last input mode reported, or None if none has been"""

    _server: Optional[asyncio.AbstractServer] = None
    _callbacks: List[TvEventCallback]
    _queue_subscribers: Set[TvEventSubscriber]
    _callback_tasks: Set[asyncio.Future[Any]]

    def __init__(
            self,
            client: TelevisionApiClient,
            lease: int=EVENTS_TIMEOUT,
            listen_host: str="0.0.0.0",
            callback_host: Optional[str]=None,
          ):
        self.client = client
        self.lease = lease
        self.listen_host = listen_host
        self.callback_host = callback_host
        self._callbacks = []
        self._queue_subscribers = set()
        self._callback_tasks = set()

    @property
    def is_subscribed(self) -> bool:
        return self.sid is not None

    @property
    def listen_port(self) -> Optional[int]:
        if self._server is None or len(self._server.sockets) == 0:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def event_url(self) -> str:
        return f"{self.client.base_url}{URL_EVENT_NRC}"

    def add_callback(self, callback: TvEventCallback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: TvEventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def add_queue_subscriber(self, subscriber: TvEventSubscriber) -> None:
        self._queue_subscribers.add(subscriber)

    def remove_queue_subscriber(self, subscriber: TvEventSubscriber) -> None:
        self._queue_subscribers.discard(subscriber)

    def subscriber(self, max_queue_size: int=MAX_QUEUE_SIZE) -> TvEventSubscriber:
        """Returns an async context manager/iterable that yields events as they arrive."""
        return TvEventSubscriber(self, max_queue_size=max_queue_size)

    async def subscribe(self) -> bool:
        """Starts the NOTIFY listener and subscribes to the television's events.

        Returns True if subscribed (or already subscribed). On failure the listener is
        closed, a warning is logged and False is returned.
        """
        if self.sid is not None:
            return True
        try:
            self._server = await asyncio.start_server(self._handle_connection, host=self.listen_host, port=0)
            port = self.listen_port
            host = self.callback_host
            if host is None:
                host = get_callback_ip_address(self.client.identity.host)
            request = ApiRequest(
                "SUBSCRIBE",
                self.event_url,
                headers={
                    "CALLBACK": f"<http://{host}:{port}>",
                    "NT": "upnp:event",
                    "TIMEOUT": f"Second-{self.lease}",
                  },
              )
            response = await self.client.send(request)
            if not response.ok:
                raise TelevisionApiCall(f"SUBSCRIBE returned HTTP {response.status_code}", request, response)
            sid = response.headers.get("SID")
            if sid is None or sid == '':
                raise TelevisionApiCall("SUBSCRIBE response has no SID header", request, response)
            self.sid = sid
            logger.debug(f"Subscribed to events from {self.client.identity.host}, sid={sid}, callback={host}:{port}")
            return True
        except (TelevisionApiCall, OSError) as e:
            logger.warning(f"Could not subscribe to events from {self.client.identity.host}: {e}")
            await self._close_server()
            return False

    async def renew(self) -> bool:
        """Renews the current subscription. Returns False if there is none or renewal failed."""
        if self.sid is None:
            return False
        request = ApiRequest(
            "SUBSCRIBE",
            self.event_url,
            headers={ "SID": self.sid, "TIMEOUT": f"Second-{self.lease}" },
          )
        try:
            response = await self.client.send(request)
        except TelevisionApiCall as e:
            logger.warning(f"Could not renew event subscription {self.sid}: {e}")
            return False
        if not response.ok:
            logger.warning(f"Renewal of event subscription {self.sid} returned HTTP {response.status_code}")
            return False
        sid = response.headers.get("SID")
        if sid is not None and sid != '':
            self.sid = sid
        return True

    async def unsubscribe(self) -> None:
        """Cancels the subscription if there is one, and always closes the listener."""
        sid = self.sid
        try:
            if sid is not None:
                request = ApiRequest("UNSUBSCRIBE", self.event_url, headers={ "SID": sid })
                response = await self.client.send(request, timeout=UNSUBSCRIBE_TIMEOUT)
                if not response.ok:
                    logger.warning(f"UNSUBSCRIBE {sid} returned HTTP {response.status_code}")
        except TelevisionApiCall as e:
            logger.warning(f"Could not unsubscribe {sid}: {e}")
        finally:
            self.sid = None
            await self._close_server()

    async def close(self) -> None:
        """Unsubscribes and ends all async subscribers."""
        await self.unsubscribe()
        for subscriber in list(self._queue_subscribers):
            subscriber.on_end_of_stream()
        self._queue_subscribers.clear()

    async def _close_server(self) -> None:
        server = self._server
        self._server = None
        if server is not None:
            server.close()
            await server.wait_closed()

    def reset_state(self) -> None:
        """Forgets the remembered screen state and input mode."""
        self.screen_state = None
        self.input_mode = None

    def parse_notification(self, data: bytes) -> Optional[TvEvent]:
        """Updates the remembered state from a NOTIFY message.

        Returns the resulting TvEvent, or None if the message reports neither screen state nor input mode.
        """
        text = data.decode('utf-8', errors='replace')
        matched = False
        m = _screen_state_re.search(text)
        if m:
            self.screen_state = m.group(1).lower() == 'on'
            matched = True
        m = _input_mode_re.search(text)
        if m:
            self.input_mode = m.group(1).lower()
            matched = True
        if not matched:
            return None
        return TvEvent(self.screen_state, self.input_mode)

    def dispatch(self, event: TvEvent) -> None:
        logger.debug(f"Event from {self.client.identity.host}: {event}")
        for callback in list(self._callbacks):
            try:
                result = callback(event)
            except Exception as e:
                logger.warning(f"Event callback raised exception processing {event}: {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._callback_tasks.add(task)
                task.add_done_callback(self._on_callback_done)
        for subscriber in list(self._queue_subscribers):
            subscriber.on_event(event)

    def _on_callback_done(self, task: asyncio.Future[Any]) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        e = task.exception()
        if e is not None:
            logger.warning(f"Async event callback raised exception: {e}")

    async def _read_message(self, reader: asyncio.StreamReader) -> bytes:
        data = b''
        while not has_complete_headers(data):
            if len(data) > MAX_HEADER_SIZE:
                raise ValueError("NOTIFY headers too large")
            chunk = await reader.read(4096)
            if len(chunk) == 0:
                return data
            data += chunk
        statement_and_remainder = split_bytes_at_lf_or_crlf(data, 1)
        remainder = b'' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
        headers, body = parse_http_headers(remainder)
        head = data[:len(data) - len(body)]
        content_length = int(headers.get("Content-Length", "0"))
        if len(body) < content_length:
            body += await reader.readexactly(content_length - len(body))
        return head + body

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            data = await asyncio.wait_for(self._read_message(reader), self.client.timeout)
            logger.debug(f"Received event notification: {data!r}")
            writer.write(NOTIFY_REPLY)
            await writer.drain()
            event = self.parse_notification(data)
            if event is not None:
                self.dispatch(event)
        except (OSError, ValueError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
            logger.warning(f"Error receiving event notification: {e!r}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
