# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Blocking wrappers for callers that do not run an asyncio event loop.

Each BlockingTelevision drives a private event loop, so it must not be used from
inside a running loop.
"""

from __future__ import annotations

import asyncio

from .internal_types import *
from .action_key import ActionKey
from .client_config import TelevisionClientConfig
from .discovery import discover
from .events import TvEventCallback
from .models import (
    DeviceIdentity,
    DeviceSpecs,
    ApplicationEntry,
    DiscoveredDevice,
    VectorInfo,
    PairingChallenge,
    PairingResult,
  )
from .television import Television

_T = TypeVar('_T')

def _run_in_new_loop(coro: Coroutine[Any, Any, _T]) -> _T:
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        return loop.run_until_complete(coro)
    finally:
        asyncio.set_event_loop(None)
        loop.close()

def discover_blocking(
        timeout: Optional[float]=None,
        config: Optional[TelevisionClientConfig]=None,
        enrich: bool=True,
      ) -> List[DiscoveredDevice]:
    """Blocking form of discover()."""
    return _run_in_new_loop(discover(timeout=timeout, config=config, enrich=enrich))

class BlockingTelevision(ContextManager['BlockingTelevision']):
    """A Television whose methods block until the operation completes.

    Event callbacks registered here run only while a blocking call is in progress, since that
    is the only time the private loop runs.
    """

    television: Television
    _loop: asyncio.AbstractEventLoop

    def __init__(self, identity: DeviceIdentity, config: Optional[TelevisionClientConfig]=None):
        self._loop = asyncio.new_event_loop()
        self.television = Television(identity, config=config)

    def _run(self, coro: Coroutine[Any, Any, _T]) -> _T:
        if self._loop.is_closed():
            coro.close()
            raise RuntimeError("BlockingTelevision has been closed")
        return self._loop.run_until_complete(coro)

    def close(self) -> None:
        """Disconnects and closes the private event loop."""
        if self._loop.is_closed():
            return
        try:
            self._run(self.television.disconnect())
        finally:
            self._loop.close()

    def __enter__(self) -> BlockingTelevision:
        self.connect()
        return self

    def __exit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.close()
        return False

    @property
    def identity(self) -> DeviceIdentity:
        return self.television.identity

    @property
    def is_connected(self) -> bool:
        return self.television.is_connected

    def connect(self, subscribe: bool=False) -> None:
        self._run(self.television.connect(subscribe=subscribe))

    def disconnect(self) -> None:
        self._run(self.television.disconnect())

    def get_specs(self) -> DeviceSpecs:
        return self._run(self.television.get_specs())

    def needs_crypto(self) -> bool:
        return self._run(self.television.needs_crypto())

    def get_apps(self) -> List[ApplicationEntry]:
        return self._run(self.television.get_apps())

    def get_vector_info(self) -> VectorInfo:
        return self._run(self.television.get_vector_info())

    def get_volume(self) -> int:
        return self._run(self.television.get_volume())

    def set_volume(self, volume: int) -> None:
        self._run(self.television.set_volume(volume))

    def get_mute(self) -> bool:
        return self._run(self.television.get_mute())

    def set_mute(self, mute: bool) -> None:
        self._run(self.television.set_mute(mute))

    def send_key(self, key: Union[ActionKey, str]) -> None:
        self._run(self.television.send_key(key))

    def launch_app(self, app_id: str) -> None:
        self._run(self.television.launch_app(app_id))

    def select_hdmi(self, input_number: int) -> None:
        self._run(self.television.select_hdmi(input_number))

    def liveness_probe(self, timeout: Optional[float]=None) -> bool:
        return self._run(self.television.liveness_probe(timeout))

    def is_turned_on(self, timeout: Optional[float]=None) -> bool:
        return self._run(self.television.is_turned_on(timeout))

    def turn_on(self) -> None:
        self._run(self.television.turn_on())

    def turn_off(self) -> None:
        self._run(self.television.turn_off())

    def wake_on_lan(self) -> None:
        self._run(self.television.wake_on_lan())

    def request_pin_code(self, name: str) -> PairingChallenge:
        return self._run(self.television.request_pin_code(name))

    def authorize_pin_code(self, pin: str, challenge: Optional[PairingChallenge]=None) -> PairingResult:
        return self._run(self.television.authorize_pin_code(pin, challenge))

    def add_event_listener(self, callback: TvEventCallback) -> None:
        self.television.add_event_listener(callback)

    def remove_event_listener(self, callback: TvEventCallback) -> None:
        self.television.remove_event_listener(callback)
