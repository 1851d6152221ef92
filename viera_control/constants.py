# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

DEFAULT_PORT = 55000
"""The TCP port on which the television serves its UPnP description and control endpoints."""

DEFAULT_TIMEOUT = 5.0
"""The default timeout for HTTP requests to the television, in seconds."""

URN_RENDERING_CONTROL = "schemas-upnp-org:service:RenderingControl:1"
"""The service URN for volume and mute actions."""

URN_REMOTE_CONTROL = "panasonic-com:service:p00NetworkControl:1"
"""The service URN for remote-control keys, applications and pairing."""

URL_CONTROL_DMR = "/dmr/control_0"
"""Control endpoint of the rendering control service."""

URL_CONTROL_NRC = "/nrc/control_0"
"""Control endpoint of the network remote control service."""

URL_EVENT_NRC = "/nrc/event_0"
"""GENA event subscription endpoint of the network remote control service."""

URL_CONTROL_NRC_DDD = "/nrc/ddd.xml"
"""Device description document."""

URL_CONTROL_NRC_DEF = "/nrc/sdd_0.xml"
"""Service description document. Lists X_GetEncryptSessionId on models that require encryption."""

SOAP_ENVELOPE_NS = "http://schemas.xmlsoap.org/soap/envelope/"
"""Namespace of the SOAP envelope."""

SOAP_ENCODING_STYLE = "http://schemas.xmlsoap.org/soap/encoding/"
"""Encoding style declared on the SOAP envelope."""

UNENCRYPTED_ACTIONS = ("X_GetEncryptSessionId", "X_DisplayPinCode", "X_RequestAuth")
"""Remote-control actions that are always sent in the clear, even in encrypted mode."""

SSDP_MULTICAST_ADDRESS = "239.255.255.250"
"""The multicast address used by SSDP for UDP multicast."""

SSDP_PORT = 1900
"""The port number used by SSDP for UDP multicast."""

SSDP_SEARCH_TARGET = f"urn:{URN_REMOTE_CONTROL}"
"""The ST header sent in M-SEARCH requests."""

SEARCH_TIMEOUT = 5.0
"""The default amount of time (in seconds) to collect discovery responses."""

LIVENESS_PROBE_TIMEOUT = 1.5
"""Timeout for the TCP connect used to check that a television is reachable, in seconds."""

SCREEN_STATE_TIMEOUT = 1.5
"""How long to wait for the first event when probing screen state without a subscription, in seconds."""

EVENTS_TIMEOUT = 10
"""The GENA subscription lease requested from the television, in seconds."""

UNSUBSCRIBE_TIMEOUT = 1.0
"""Timeout for the UNSUBSCRIBE request, in seconds."""

RECONNECT_COOLDOWN = 300.0
"""After a failed connect, further connects within this many seconds fail without touching the network."""

WOL_PORT = 9
"""UDP port for wake-on-LAN magic packets."""

WOL_BROADCAST_ADDRESS = "255.255.255.255"
"""Broadcast address that also receives wake-on-LAN packets."""

APP_TYPE = "vc_app"
"""X_AppType sent with X_LaunchApp."""

PRODUCT_ID_LENGTH = 16
"""Application ids of exactly this length are launched with product_id=; all others with resource_id=."""

KEY_LENGTH = 16
"""Length in bytes of the AES key and IV."""

HMAC_KEY_LENGTH = 32
"""Length in bytes of the HMAC-SHA-256 key and signature."""

HMAC_KEY_MASK = bytes([
    0x15, 0xC9, 0x5A, 0xC2, 0xB0, 0x8A, 0xA7, 0xEB,
    0x4E, 0x22, 0x8F, 0x81, 0x1E, 0x34, 0xD0, 0x4F,
    0xA5, 0x4B, 0xA7, 0xDC, 0xAC, 0x98, 0x79, 0xFA,
    0x8A, 0xCD, 0xA3, 0xFC, 0x24, 0x4F, 0x38, 0x54,
  ])
"""Vendor mask XORed with the shuffled challenge key to produce the pairing HMAC key."""
