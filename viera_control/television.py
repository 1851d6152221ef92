# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Television -- The public async interface to one Panasonic VIERA television.

Wraps a TelevisionApiClient and an EventSubscriber, and adds connection management,
power handling, pairing and event listeners on top of them.

Usage:
    identity = DeviceIdentity("4D454930-0200-1000-8001-A81374B30314", "192.168.1.20",
                              app_id=app_id, pairing_key=pairing_key)
    async with Television(identity) as tv:
        await tv.set_volume(20)
        await tv.send_key(ActionKey.MUTE)
"""

from __future__ import annotations

import asyncio
import inspect
import time

import aiohttp

from .internal_types import *
from .pkg_logging import logger
from .exceptions import (
    TelevisionApiError,
    DecryptError,
    InvalidArgument,
    InvalidState,
  )
from .action_key import ActionKey, hdmi_key
from .client import TelevisionApiClient
from .client_config import TelevisionClientConfig
from .events import EventSubscriber, TvEventSubscriber, TvEventCallback
from .models import (
    DeviceIdentity,
    DeviceSpecs,
    ApplicationEntry,
    VectorInfo,
    PairingChallenge,
    PairingResult,
  )
from .network import liveness_probe, wake_on_lan
from .session import SessionRegistry

PinProvider = Callable[[], Union[str, Awaitable[str]]]

class Television(AsyncContextManager['Television']):
    """
    One television, in either open or encrypted mode as determined by its DeviceIdentity.

    Entering the async context connects (running the encryption handshake if the television is paired);
    leaving it disconnects, which cancels any event subscription and discards session keys.
    """

    identity: DeviceIdentity
    config: TelevisionClientConfig
    sessions: SessionRegistry

    client: TelevisionApiClient
    """The underlying SOAP client"""

    events: EventSubscriber
    """The underlying event subscriber"""

    _connected: bool = False
    _last_failed_connect: Optional[float] = None
    _renew_task: Optional[asyncio.Task[None]] = None
    _pending_challenge: Optional[PairingChallenge] = None
    _pairing_name: Optional[str] = None

    def __init__(
            self,
            identity: DeviceIdentity,
            config: Optional[TelevisionClientConfig]=None,
            sessions: Optional[SessionRegistry]=None,
            http_session: Optional[aiohttp.ClientSession]=None,
          ):
        self.identity = identity
        self.config = TelevisionClientConfig() if config is None else config
        self.sessions = SessionRegistry() if sessions is None else sessions
        self.client = TelevisionApiClient(
            identity,
            sessions=self.sessions,
            timeout=self.config.timeout,
            http_session=http_session,
          )
        self.events = EventSubscriber(
            self.client,
            lease=self.config.event_lease,
            listen_host=self.config.listen_host,
            callback_host=self.config.callback_host,
          )

    @property
    def host(self) -> str:
        return self.identity.host

    @property
    def port(self) -> int:
        return self.identity.port

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self, subscribe: bool=False) -> None:
        """Prepares the television for use.

        In encrypted mode this derives the session keys from the pairing key and runs the
        X_GetEncryptSessionId handshake. If subscribe is True, event subscription is also
        attempted; its failure is logged but does not fail the connect.

        Raises TelevisionApiError if the handshake fails, or if a previous connect failed less than
        config.reconnect_cooldown seconds ago (in which case the network is not touched).
        """
        now = time.monotonic()
        if self._last_failed_connect is not None:
            remaining = self._last_failed_connect + self.config.reconnect_cooldown - now
            if remaining > 0:
                raise TelevisionApiError(
                    f"Connection to {self.host} failed recently; retry in {remaining:.0f} seconds")
        if self.identity.is_encrypted:
            assert self.identity.pairing_key is not None
            try:
                self.sessions.create(self.identity.id, self.identity.pairing_key)
                await self.client.request_session_id()
            except (TelevisionApiError, InvalidArgument):
                self._last_failed_connect = now
                self.sessions.discard(self.identity.id)
                raise
        self._last_failed_connect = None
        self._connected = True
        logger.debug(f"Connected to {self.identity}")
        if subscribe:
            await self.subscribe()

    async def disconnect(self) -> None:
        """Cancels event subscription, closes listeners and HTTP connections and discards session keys."""
        try:
            await self._stop_renewal()
            await self.events.close()
        finally:
            self.sessions.discard(self.identity.id)
            await self.client.close()
            self._connected = False
            logger.debug(f"Disconnected from {self.identity}")

    async def __aenter__(self) -> Television:
        await self.connect()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.disconnect()
        return False

    # ======================= events

    @property
    def is_subscribed(self) -> bool:
        return self.events.is_subscribed

    async def subscribe(self) -> bool:
        """Subscribes to events and keeps the subscription renewed. Returns False on failure."""
        if not await self.events.subscribe():
            return False
        if self._renew_task is None or self._renew_task.done():
            self._renew_task = asyncio.create_task(self._renew_loop())
        return True

    async def unsubscribe(self) -> None:
        await self._stop_renewal()
        await self.events.unsubscribe()

    async def _stop_renewal(self) -> None:
        task = self._renew_task
        self._renew_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _renew_loop(self) -> None:
        interval = self.config.event_lease / 2
        while True:
            await asyncio.sleep(interval)
            if await self.events.renew():
                continue
            logger.info(f"Event subscription to {self.host} lapsed; subscribing again")
            await self.events.unsubscribe()
            await self.events.subscribe()

    def add_event_listener(self, callback: TvEventCallback) -> None:
        """Registers a callable that receives each TvEvent."""
        self.events.add_callback(callback)

    def remove_event_listener(self, callback: TvEventCallback) -> None:
        self.events.remove_callback(callback)

    def iter_events(self) -> TvEventSubscriber:
        """Returns an async context manager/iterable of TvEvents.

        Usage:
            async with tv.iter_events() as events:
                async for event in events:
                    ...
        """
        return self.events.subscriber()

    # ======================= queries and commands

    async def get_specs(self) -> DeviceSpecs:
        return await self.client.get_specs()

    async def needs_crypto(self) -> bool:
        return await self.client.needs_crypto()

    async def get_apps(self) -> List[ApplicationEntry]:
        return await self.client.get_apps()

    async def get_vector_info(self) -> VectorInfo:
        return await self.client.get_vector_info()

    async def get_volume(self) -> int:
        return await self.client.get_volume()

    async def set_volume(self, volume: int) -> None:
        await self.client.set_volume(volume)

    async def get_mute(self) -> bool:
        return await self.client.get_mute()

    async def set_mute(self, mute: bool) -> None:
        await self.client.set_mute(mute)

    async def send_key(self, key: Union[ActionKey, str]) -> None:
        await self.client.send_key(key)

    async def launch_app(self, app_id: str) -> None:
        await self.client.launch_app(app_id)

    async def select_hdmi(self, input_number: int) -> None:
        """Switches to HDMI input input_number (1-based)."""
        await self.client.send_key(hdmi_key(input_number))

    async def select_tv(self) -> None:
        await self.client.send_key(ActionKey.TV)

    # ======================= power

    async def liveness_probe(self, timeout: Optional[float]=None) -> bool:
        """True if the television accepts a TCP connection on its control port."""
        return await liveness_probe(self.host, self.port, self.config.probe_timeout if timeout is None else timeout)

    async def is_turned_on(self, timeout: Optional[float]=None) -> bool:
        """Returns True if the screen is on.

        While subscribed, the last reported screen state is returned. Otherwise a temporary
        subscription is made and the first reported state is awaited for up to timeout
        seconds; no report counts as off.
        """
        if timeout is None:
            timeout = self.config.screen_state_timeout
        if self.events.is_subscribed and self.events.screen_state is not None:
            return self.events.screen_state
        subscribed_here = False
        async with self.events.subscriber() as stream:
            if not self.events.is_subscribed:
                self.events.reset_state()
                if not await self.events.subscribe():
                    return False
                subscribed_here = True
            try:
                deadline = time.monotonic() + timeout
                while self.events.screen_state is None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0.0:
                        break
                    try:
                        event = await stream.receive(remaining)
                    except asyncio.TimeoutError:
                        break
                    if event is None:
                        break
            finally:
                if subscribed_here:
                    await self.events.unsubscribe()
        return bool(self.events.screen_state)

    async def wake_on_lan(self) -> None:
        """Sends a wake-on-LAN packet to the television.

        Raises InvalidArgument if no MAC address is known.
        """
        if self.identity.mac_address is None:
            raise InvalidArgument(f"No MAC address known for {self.host}")
        try:
            wake_on_lan(self.identity.mac_address, host=self.host)
        except OSError as e:
            raise TelevisionApiError(f"Could not send wake-on-LAN packet to {self.host}: {e}") from e

    async def turn_on(self) -> None:
        """Turns the screen on if it is off, by wake-on-LAN when the MAC address is known and by the
           power key otherwise."""
        if await self.is_turned_on():
            return
        if self.identity.mac_address is not None:
            await self.wake_on_lan()
        else:
            await self.send_key(ActionKey.POWER)

    async def turn_off(self) -> None:
        """Turns the screen off if it is on."""
        if await self.is_turned_on():
            await self.send_key(ActionKey.POWER)

    # ======================= pairing

    @property
    def pending_challenge(self) -> Optional[PairingChallenge]:
        return self._pending_challenge

    async def request_pin_code(self, name: str) -> PairingChallenge:
        """Asks the television to show a PIN; the challenge is kept for authorize_pin_code()."""
        challenge = await self.client.request_pin_code(name)
        self._pending_challenge = challenge
        self._pairing_name = name
        return challenge

    async def authorize_pin_code(self, pin: str, challenge: Optional[PairingChallenge]=None) -> PairingResult:
        """Authorizes the PIN shown on screen against the pending (or given) challenge.

        If the television's answer fails its integrity check, which is what a wrong PIN
        produces, a fresh challenge is requested at once so the television shows a new PIN,
        and the DecryptError is re-raised.

        Raises InvalidState if there is no challenge to authorize against.
        """
        if challenge is None:
            challenge = self._pending_challenge
        if challenge is None:
            raise InvalidState("No PIN code has been requested")
        try:
            result = await self.client.authorize_pin_code(pin, challenge)
        except DecryptError:
            self._pending_challenge = None
            logger.warning(f"PIN code rejected by {self.host}; requesting a new one")
            if self._pairing_name is not None:
                try:
                    await self.request_pin_code(self._pairing_name)
                except TelevisionApiError as e:
                    logger.warning(f"Could not request a new PIN code from {self.host}: {e}")
            raise
        self._pending_challenge = None
        return result

    async def pair(self, name: str, pin_provider: PinProvider) -> PairingResult:
        """Runs the whole pairing exchange: requests a PIN, obtains it from pin_provider
           (a callable returning the PIN, or an awaitable of it) and authorizes it."""
        await self.request_pin_code(name)
        pin = pin_provider()
        if inspect.isawaitable(pin):
            pin = await pin
        if not isinstance(pin, str):
            raise InvalidArgument(f"PIN provider must return a string, got {pin!r}")
        return await self.authorize_pin_code(pin)

    def __str__(self) -> str:
        return f"Television({self.identity}, connected={self._connected})"

    def __repr__(self) -> str:
        return str(self)
