#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Simple utility functions used by this package
"""

from __future__ import annotations

from typing_extensions import SupportsIndex

import re
import netifaces
import socket
import ipaddress
from ipaddress import IPv4Address, IPv6Address

from .internal_types import *
from .exceptions import InvalidArgument

from email.parser import BytesHeaderParser
from email.message import Message as EmailParserMessage
from email.header import Header as EmailParserHeader
from requests.structures import CaseInsensitiveDict

_mac_address_re = re.compile(r'^(?:[A-F0-9]{2}:){5}[A-F0-9]{2}$')

def split_bytes_at_lf_or_crlf(data: bytes, maxsplit: SupportsIndex = -1) -> List[bytes]:
    """Split a byte string at LF or CRLF.

    If maxsplit is given, at most maxsplit splits are done.

    Returns a List[bytes] representing the delimited lines with the delimiters removed.
    """
    parts = data.split(b'\n', maxsplit)
    if len(parts) > 1:
        for i, part in enumerate(parts[:-1]):
            if part.endswith(b'\r'):
                parts[i] = part[:-1]
    return parts

def split_headers_and_body(data: bytes) -> Tuple[bytes, bytes]:
    """Splits a byte string with HTTP headers and an optional body into the headers and the body.

    The first blank line ends the headers; a bare '\n' is accepted as a line delimiter.

    Returns a Tuple[headers: bytes, body: bytes]. If there is no body, b'' is returned for the body.
    """
    first_i = -1
    first_nb = 0
    for delim in (b'\n\r\n', b'\n\n'):
        i = data.find(delim)
        if i != -1 and (first_i == -1 or i < first_i):
            first_i = i
            first_nb = len(delim)
    if first_i == -1:
        return (data, b'')
    headers, body = data[:first_i], data[first_i + first_nb:]
    if headers.endswith(b'\r'):
        headers = headers[:-1]
    return (headers, body)

def has_complete_headers(data: bytes) -> bool:
    """Returns True if data contains the blank line that terminates an HTTP header block."""
    return b'\n\r\n' in data or b'\n\n' in data

def parse_http_headers(data: bytes) -> Tuple[CaseInsensitiveDict[str], bytes]:
    """Parse HTTP-style headers out of a byte string. Also returns the body of the message, if any.

    It is assumed that any preceding statement line (e.g., "NOTIFY / HTTP/1.1\r\n") has already been removed.
    No decoding of header values is performed.

    Returns a tuple of (headers: CaseInsensitiveDict[str], body: bytes).
    """
    headers_data, body = split_headers_and_body(data)
    # email's parser insists on CRLF
    lines = split_bytes_at_lf_or_crlf(headers_data)
    headers_data = b'\r\n'.join(lines)
    msg: EmailParserMessage = BytesHeaderParser().parsebytes(headers_data)
    headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(msg.items())
    return (headers, body)

def encode_http_header(name: str, value: str) -> bytes:
    """Encodes a raw HTTP header name/value pair into a byte string terminated with '\r\n'."""
    h = EmailParserHeader(value, header_name=name)
    return name.encode() + b': ' + h.encode(linesep='\r\n').encode() + b'\r\n'

def normalize_mac_address(mac_address: str) -> str:
    """Normalizes a MAC address to upper-case colon-separated form.

    Accepts 12 bare hex digits, or six hex pairs separated by ':' or '-'.

    Raises InvalidArgument if the result is not a valid MAC address.
    """
    mac = mac_address.strip()
    if len(mac) == 12:
        mac = ':'.join(mac[i:i+2] for i in range(0, 12, 2))
    mac = mac.replace('-', ':').upper()
    if not _mac_address_re.match(mac):
        raise InvalidArgument(f"Invalid MAC address: {mac_address!r}")
    return mac

def is_loopback_host(host: str) -> bool:
    """Returns True if host is a literal loopback address or 'localhost'."""
    if host == 'localhost':
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False

def get_local_ip_addresses_and_interfaces(
        address_family: Union[socket.AddressFamily, int]=socket.AF_INET,
        include_loopback: bool=True
    ) -> List[Tuple[str, str]]:
    """Returns a list of Tuple[ip_address: str, interface_name: str] for the IP addresses of the local host
       in a requested address family. The result is sorted in a way that attempts to place the "preferred"
       canonical IP address first in the list, according to the following scheme:
           1. Addresses on the default gateway interface precede all other addresses.
           2. Non-loopback addresses precede loopback addresses.
           3. IPV4 addresses that begin with 172. follow other IPV4 addresses. This is a hack to
              deprioritize local docker network addresses.
    """
    result_with_priority: List[Tuple[int, str, str]] = []
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    is_ipv6 = int(address_family) == int(socket.AF_INET6)
    _, default_gateway_ifname = get_default_ip_gateway(address_family)
    netiface_family = netifaces.AF_INET6 if is_ipv6 else netifaces.AF_INET
    for ifname in netifaces.interfaces():
        ifinfo = netifaces.ifaddresses(ifname)
        for addrinfo in ifinfo.get(netiface_family, []):
            ip_str = addrinfo['addr']
            assert isinstance(ip_str, str)
            is_loopback = (IPv6Address(ip_str.split('%', 1)[0]) if is_ipv6 else IPv4Address(ip_str)).is_loopback
            if is_loopback and not include_loopback:
                continue
            if ifname == default_gateway_ifname:
                priority = 0
            elif is_loopback:
                priority = 3
            elif not is_ipv6 and ip_str.startswith('172.'):
                priority = 2
            else:
                priority = 1
            result_with_priority.append((priority, ip_str, ifname))
    return [ (ip, ifname) for _, ip, ifname in sorted(result_with_priority)]

def get_local_ip_addresses(address_family: Union[socket.AddressFamily, int]=socket.AF_INET, include_loopback: bool=True) -> List[str]:
    """Returns a List[ip_address: str] for the IP addresses of the local host, preferred address first.
       See get_local_ip_addresses_and_interfaces()."""
    return [ ip for ip, _ in get_local_ip_addresses_and_interfaces(address_family, include_loopback=include_loopback)]

def get_default_ip_gateway(address_family: socket.AddressFamily | int=socket.AF_INET) -> Tuple[Optional[str], Optional[str]]:
    """Returns the (gateway_ip_address: str, gateway_interface_name: str) for the default IP gateway in the
       requested family, if any.
       returns (None, None) if there is no default gateway in the requested family."""
    assert int(address_family) in (int(socket.AF_INET), int(socket.AF_INET6))
    netiface_family = netifaces.AF_INET if int(address_family) == int(socket.AF_INET) else netifaces.AF_INET6
    gws = netifaces.gateways()
    if "default" in gws:
        default_gateway_infos = gws["default"]
        if netiface_family in default_gateway_infos:
            gw_ip, gw_interface_name = default_gateway_infos[netiface_family][:2]
            return (gw_ip, gw_interface_name)
    return (None, None)

def get_callback_ip_address(remote_host: str) -> str:
    """Returns the local IP address a device at remote_host should use to reach this host.

    A loopback remote gets 127.0.0.1; otherwise the preferred non-loopback address is used.
    """
    if is_loopback_host(remote_host):
        return '127.0.0.1'
    addresses = get_local_ip_addresses(include_loopback=False)
    if len(addresses) == 0:
        return '127.0.0.1'
    return addresses[0]
