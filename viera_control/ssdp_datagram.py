#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of a Datagram packet used in the SSDP protocol.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from .internal_types import *
from .constants import DEFAULT_PORT, SSDP_MULTICAST_ADDRESS, SSDP_PORT, SSDP_SEARCH_TARGET

from .util import (
    CaseInsensitiveDict,
    split_bytes_at_lf_or_crlf,
    parse_http_headers,
    encode_http_header,
)

_location_re = re.compile(r'LOCATION:\s(?P<location>[\da-zA-Z:/.]+)', re.IGNORECASE)
_usn_re = re.compile(r'USN:\suuid:(?P<usn>[\da-zA-Z-]+)::urn', re.IGNORECASE)

class SsdpDatagram:
    """Wrapper for a raw SSDP datagram.

    This class provides parsing and formatting of the HTTP-like packets, a dict-like
    interface to the raw headers, and the few derived values needed to locate a television.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _statement_line: str
    """The first line of the datagram; e.g., "HTTP/1.1 200 OK" or "M-SEARCH * HTTP/1.1" """

    _headers: CaseInsensitiveDict[str]
    """The undecoded headers"""

    _body: bytes
    """The body of the datagram, if any. If there is no body, b'' is returned."""

    def __init__(
            self,
            statement: Optional[str]=None,
            headers: Optional[Mapping[str, str]]=None,
            body: Optional[bytes]=None,
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if statement is None:
                raise ValueError("Either statement or raw_data must be provided")
            self._statement_line = statement
            self._headers = CaseInsensitiveDict() if headers is None else CaseInsensitiveDict(headers)
            self._body = b'' if body is None else body
            self._rebuild_raw_data()
        else:
            if not (statement is None and headers is None and body is None):
                raise ValueError("If raw_data is provided, statement, headers, and body must be None")
            self._raw_data = raw_data
            statement_and_remainder = split_bytes_at_lf_or_crlf(raw_data, 1)
            self._statement_line = statement_and_remainder[0].decode('utf-8', errors='replace')
            headers_and_body = b'' if len(statement_and_remainder) < 2 else statement_and_remainder[1]
            self._headers, self._body = parse_http_headers(headers_and_body)

    @classmethod
    def create_search(cls, search_target: str=SSDP_SEARCH_TARGET, mx: int=1) -> SsdpDatagram:
        """Creates an M-SEARCH request for search_target."""
        return cls(
            "M-SEARCH * HTTP/1.1",
            headers={
                "HOST": f"{SSDP_MULTICAST_ADDRESS}:{SSDP_PORT}",
                "MAN": '"ssdp:discover"',
                "ST": search_target,
                "MX": str(mx),
              }
          )

    def __str__(self) -> str:
        return f"SsdpDatagram('{self._statement_line}', headers={dict(self._headers)}, body={self._body!r})"

    def __repr__(self) -> str:
        return str(self)

    @property
    def raw_data(self) -> bytes:
        return self._raw_data

    @property
    def statement_line(self) -> str:
        return self._statement_line

    @property
    def headers(self) -> CaseInsensitiveDict[str]:
        return self._headers

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def is_response(self) -> bool:
        """True for a unicast search response ("HTTP/1.1 200 OK")."""
        return self._statement_line.upper().startswith("HTTP/")

    @property
    def status_code(self) -> Optional[int]:
        if not self.is_response:
            return None
        parts = self._statement_line.split(None, 2)
        if len(parts) < 2:
            return None
        try:
            return int(parts[1])
        except ValueError:
            return None

    @property
    def hdr_location(self) -> Optional[str]:
        """Returns the description URL in the "LOCATION" header, or None.

        Matching is done on the raw text so that loosely formatted responses are still understood.
        """
        m = _location_re.search(self._raw_data.decode('utf-8', errors='replace'))
        return None if m is None else m.group('location')

    @property
    def device_id(self) -> Optional[str]:
        """Returns the device uuid from a "USN: uuid:<id>::urn..." header, or None."""
        m = _usn_re.search(self._raw_data.decode('utf-8', errors='replace'))
        return None if m is None else m.group('usn')

    @property
    def location_host_and_port(self) -> Optional[HostAndPort]:
        """Returns (host, port) of the LOCATION URL, defaulting the port to 55000; or None."""
        location = self.hdr_location
        if location is None:
            return None
        try:
            parts = urlsplit(location)
            host = parts.hostname
            port = parts.port
        except ValueError:
            return None
        if host is None:
            return None
        return (host, DEFAULT_PORT if port is None else port)

    def _rebuild_raw_data(self) -> None:
        raw_data = self._statement_line.encode('utf-8') + b'\r\n'
        for k, v in self._headers.items():
            raw_data += encode_http_header(k, v)
        raw_data += b'\r\n'
        raw_data += self._body
        self._raw_data = raw_data
