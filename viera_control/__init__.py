# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package viera_control controls Panasonic VIERA televisions over the local network.

VIERA televisions expose a UPnP-style SOAP control interface on TCP port 55000. Older
models accept plain SOAP commands; newer models (2019 and later) require the client to
be paired once, by entering a PIN shown on screen, after which every command is
sealed with AES-CBC and signed with HMAC-SHA256 under keys derived from the pairing key.

This package implements both modes, pairing, GENA event subscription for screen state
and input mode, wake-on-LAN, and SSDP discovery of televisions on the local network.
"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict

from .exceptions import (
    VieraError,
    InvalidArgument,
    InvalidState,
    TelevisionApiError,
    TelevisionApiCall,
    EncryptError,
    DecryptError,
  )

from .action_key import ActionKey, hdmi_key
from .models import (
    DeviceIdentity,
    DeviceSpecs,
    ApplicationEntry,
    VectorInfo,
    TvEvent,
    PairingChallenge,
    PairingResult,
    DiscoveredDevice,
  )
from .session import Session, SessionRegistry
from .client import TelevisionApiClient, ApiRequest, ApiResponse
from .client_config import TelevisionClientConfig
from .events import EventSubscriber, TvEventSubscriber
from .television import Television
from .discovery import TelevisionDiscovery, SsdpClient, SsdpSearchRequest, discover
from .blocking import BlockingTelevision, discover_blocking
from .constants import DEFAULT_PORT, SSDP_MULTICAST_ADDRESS, SSDP_PORT

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict',
    'VieraError', 'InvalidArgument', 'InvalidState',
    'TelevisionApiError', 'TelevisionApiCall', 'EncryptError', 'DecryptError',
    'ActionKey', 'hdmi_key',
    'DeviceIdentity', 'DeviceSpecs', 'ApplicationEntry', 'VectorInfo', 'TvEvent',
    'PairingChallenge', 'PairingResult', 'DiscoveredDevice',
    'Session', 'SessionRegistry',
    'TelevisionApiClient', 'ApiRequest', 'ApiResponse',
    'TelevisionClientConfig',
    'EventSubscriber', 'TvEventSubscriber',
    'Television',
    'TelevisionDiscovery', 'SsdpClient', 'SsdpSearchRequest', 'discover',
    'BlockingTelevision', 'discover_blocking',
    'DEFAULT_PORT', 'SSDP_MULTICAST_ADDRESS', 'SSDP_PORT',
]
