# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Tunable settings for television clients.

Values default to the package constants. TelevisionClientConfig.from_env() lets VIERA_*
environment variables override them, which is how the command line tool is configured.
"""

from __future__ import annotations

import os

from .internal_types import *
from .constants import (
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    EVENTS_TIMEOUT,
    LIVENESS_PROBE_TIMEOUT,
    RECONNECT_COOLDOWN,
    SCREEN_STATE_TIMEOUT,
    SEARCH_TIMEOUT,
  )
from .exceptions import InvalidArgument

class TelevisionClientConfig:
    """Settings shared by Television, EventSubscriber and discovery."""

    timeout: float = DEFAULT_TIMEOUT
    """Timeout for each HTTP request, in seconds"""

    probe_timeout: float = LIVENESS_PROBE_TIMEOUT
    """Timeout for the TCP liveness probe, in seconds"""

    screen_state_timeout: float = SCREEN_STATE_TIMEOUT
    """How long is_turned_on() waits for a first event, in seconds"""

    event_lease: int = EVENTS_TIMEOUT
    """The GENA subscription lease requested, in seconds"""

    reconnect_cooldown: float = RECONNECT_COOLDOWN
    """After a failed connect, further connects within this many seconds fail immediately"""

    callback_host: Optional[str] = None
    """The address advertised to the television for event delivery. If None, chosen automatically."""

    listen_host: str = "0.0.0.0"
    """The local address the event listener binds to"""

    discovery_timeout: float = SEARCH_TIMEOUT
    """How long discovery collects responses, in seconds"""

    default_port: int = DEFAULT_PORT
    """The television port assumed when none is given"""

    def __init__(
            self,
            timeout: Optional[float]=None,
            probe_timeout: Optional[float]=None,
            screen_state_timeout: Optional[float]=None,
            event_lease: Optional[int]=None,
            reconnect_cooldown: Optional[float]=None,
            callback_host: Optional[str]=None,
            listen_host: Optional[str]=None,
            discovery_timeout: Optional[float]=None,
            default_port: Optional[int]=None,
          ):
        if timeout is not None:
            self.timeout = timeout
        if probe_timeout is not None:
            self.probe_timeout = probe_timeout
        if screen_state_timeout is not None:
            self.screen_state_timeout = screen_state_timeout
        if event_lease is not None:
            self.event_lease = event_lease
        if reconnect_cooldown is not None:
            self.reconnect_cooldown = reconnect_cooldown
        if callback_host is not None and callback_host != '':
            self.callback_host = callback_host
        if listen_host is not None and listen_host != '':
            self.listen_host = listen_host
        if discovery_timeout is not None:
            self.discovery_timeout = discovery_timeout
        if default_port is not None:
            self.default_port = default_port
        if self.event_lease < 2:
            raise InvalidArgument(f"Event lease must be at least 2 seconds, got {self.event_lease}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]]=None, **kwargs: Any) -> TelevisionClientConfig:
        """Creates a config from VIERA_* environment variables. Explicit kwargs take precedence.

        Recognized variables: VIERA_TIMEOUT, VIERA_PROBE_TIMEOUT, VIERA_SCREEN_STATE_TIMEOUT,
        VIERA_EVENT_LEASE, VIERA_RECONNECT_COOLDOWN, VIERA_CALLBACK_HOST, VIERA_LISTEN_HOST,
        VIERA_DISCOVERY_TIMEOUT, VIERA_PORT.
        """
        if env is None:
            env = os.environ

        def get(name: str, convert: Callable[[str], Any]) -> Any:
            value = env.get(name)
            if value is None or value == '':
                return None
            try:
                return convert(value)
            except ValueError as e:
                raise InvalidArgument(f"Invalid value for {name}: {value!r}") from e

        settings: Dict[str, Any] = dict(
            timeout=get("VIERA_TIMEOUT", float),
            probe_timeout=get("VIERA_PROBE_TIMEOUT", float),
            screen_state_timeout=get("VIERA_SCREEN_STATE_TIMEOUT", float),
            event_lease=get("VIERA_EVENT_LEASE", int),
            reconnect_cooldown=get("VIERA_RECONNECT_COOLDOWN", float),
            callback_host=get("VIERA_CALLBACK_HOST", str),
            listen_host=get("VIERA_LISTEN_HOST", str),
            discovery_timeout=get("VIERA_DISCOVERY_TIMEOUT", float),
            default_port=get("VIERA_PORT", int),
          )
        settings.update({ k: v for k, v in kwargs.items() if v is not None })
        return cls(**settings)

    def __str__(self) -> str:
        return (
            f"TelevisionClientConfig(timeout={self.timeout}, probe_timeout={self.probe_timeout}, "
            f"event_lease={self.event_lease}, reconnect_cooldown={self.reconnect_cooldown}, "
            f"callback_host={self.callback_host})"
          )

    def __repr__(self) -> str:
        return str(self)
