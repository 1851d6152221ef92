# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import asyncio
import socket

from viera_control.client_config import TelevisionClientConfig
from viera_control.discovery import SsdpClient, TelevisionDiscovery
from viera_control.models import ApplicationEntry
from viera_control.ssdp_datagram import SsdpDatagram

from fake_television import FakeTelevision, DEVICE_ID

TV_UUID = "93e760e1-f011-4a33-a70d-c9629706ccf8"
OTHER_UUID = "0f6c2b7e-8d2a-4c43-9d1d-4d2f4e1a2b3c"

def search_response(uuid: str, host: str, port: int) -> bytes:
    return (
        "HTTP/1.1 200 OK\r\n"
        "CACHE-CONTROL: max-age=1800\r\n"
        "EXT:\r\n"
        f"LOCATION: http://{host}:{port}/nrc/ddd.xml\r\n"
        "SERVER: Linux/4.0 UPnP/1.0 Panasonic-MIL-DLNA-SV/1.0\r\n"
        "ST: urn:panasonic-com:service:p00NetworkControl:1\r\n"
        f"USN: uuid:{uuid}::urn:panasonic-com:service:p00NetworkControl:1\r\n"
        "\r\n"
      ).encode('utf-8')

def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]

class FakeResponder(asyncio.DatagramProtocol):
    """Answers every datagram it receives with a fixed list of responses."""

    def __init__(self, responses):
        self.responses = responses
        self.searches = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.searches.append(data)
        for response in self.responses:
            self.transport.sendto(response, addr)

async def start_responder(responses):
    loop = asyncio.get_running_loop()
    transport, responder = await loop.create_datagram_endpoint(
        lambda: FakeResponder(responses),
        local_addr=("127.0.0.1", 0),
      )
    return transport, responder, transport.get_extra_info("sockname")[1]

def loopback_ssdp_client_factory(port: int):
    def factory(wait_time: float) -> SsdpClient:
        return SsdpClient(
            response_wait_time=wait_time,
            multicast_address="127.0.0.1",
            multicast_port=port,
            bind_addresses=[ "127.0.0.1" ],
          )
    return factory

def test_search_datagram():
    assert SsdpDatagram.create_search().raw_data == (
        b"M-SEARCH * HTTP/1.1\r\n"
        b"HOST: 239.255.255.250:1900\r\n"
        b"MAN: \"ssdp:discover\"\r\n"
        b"ST: urn:panasonic-com:service:p00NetworkControl:1\r\n"
        b"MX: 1\r\n"
        b"\r\n"
      )

def test_parse_search_response():
    datagram = SsdpDatagram(raw_data=search_response(TV_UUID, "10.10.0.10", 55000))
    assert datagram.is_response
    assert datagram.status_code == 200
    assert datagram.headers["st"] == "urn:panasonic-com:service:p00NetworkControl:1"
    assert datagram.hdr_location == "http://10.10.0.10:55000/nrc/ddd.xml"
    assert datagram.device_id == TV_UUID
    assert datagram.location_host_and_port == ("10.10.0.10", 55000)

def test_parse_loosely_formatted_response():
    raw = (
        "HTTP/1.1 200 OK"
        "CACHE-CONTROL: max-age=1800\n\r"
        "LOCATION: http://10.10.0.10/nrc/ddd.xml\n\r"
        f"USN: uuid:{TV_UUID}::urn:panasonic-com:service:p00NetworkControl:1\n\r"
        "\n\r"
      ).encode('utf-8')
    datagram = SsdpDatagram(raw_data=raw)
    assert datagram.device_id == TV_UUID
    # no port in LOCATION means the default control port
    assert datagram.location_host_and_port == ("10.10.0.10", 55000)

def test_response_without_usn_is_not_a_television():
    datagram = SsdpDatagram(raw_data=b"HTTP/1.1 200 OK\r\nLOCATION: http://10.0.0.1:80/desc.xml\r\n\r\n")
    assert datagram.device_id is None

def test_discovery_deduplicates_and_drops_unreachable():
    async def main():
        async with FakeTelevision() as fake:
            responses = [
                search_response(TV_UUID, fake.host, fake.port),
                search_response(TV_UUID, fake.host, fake.port),
                search_response(OTHER_UUID, "127.0.0.1", unused_port()),
                b"HTTP/1.1 200 OK\r\nST: upnp:rootdevice\r\n\r\n",
              ]
            transport, responder, port = await start_responder(responses)
            try:
                devices = []
                async with TelevisionDiscovery(
                        timeout=0.5,
                        enrich=False,
                        ssdp_client_factory=loopback_ssdp_client_factory(port),
                      ) as discovery:
                    async for device in discovery:
                        devices.append(device)
            finally:
                transport.close()
            return fake, responder, devices

    fake, responder, devices = asyncio.run(main())
    assert len(responder.searches) == 1
    assert b"ST: urn:panasonic-com:service:p00NetworkControl:1" in responder.searches[0]
    assert len(devices) == 1
    device = devices[0]
    assert device.id == TV_UUID
    assert (device.host, device.port) == ("127.0.0.1", fake.port)
    assert device.specs is None
    # the liveness probe is the only contact without enrichment
    assert fake.calls == []

def test_discovery_enriches_open_television():
    async def main():
        async with FakeTelevision(screen_state="on") as fake:
            transport, responder, port = await start_responder([ search_response(TV_UUID, fake.host, fake.port) ])
            config = TelevisionClientConfig(callback_host="127.0.0.1", listen_host="127.0.0.1", screen_state_timeout=2.0)
            try:
                devices = []
                async with TelevisionDiscovery(
                        timeout=0.3,
                        config=config,
                        ssdp_client_factory=loopback_ssdp_client_factory(port),
                      ) as discovery:
                    async for device in discovery:
                        devices.append(device)
            finally:
                transport.close()
            return devices

    devices = asyncio.run(main())
    assert len(devices) == 1
    device = devices[0]
    assert device.specs is not None
    assert device.specs.serial_number == DEVICE_ID
    assert device.encrypted is False
    assert device.is_turned_on is True
    assert ApplicationEntry("0010000200000001", "Netflix") in device.applications
    assert device.to_jsonable()["applications"][0] == { "id": "0387878700000102", "name": "Apps Market" }

def test_discovery_skips_apps_of_encrypted_television():
    async def main():
        async with FakeTelevision(encrypted=True, screen_state="on") as fake:
            transport, responder, port = await start_responder([ search_response(TV_UUID, fake.host, fake.port) ])
            try:
                devices = []
                async with TelevisionDiscovery(
                        timeout=0.3,
                        ssdp_client_factory=loopback_ssdp_client_factory(port),
                      ) as discovery:
                    async for device in discovery:
                        devices.append(device)
            finally:
                transport.close()
            return fake, devices

    fake, devices = asyncio.run(main())
    assert len(devices) == 1
    assert devices[0].encrypted is True
    assert devices[0].applications == []
    assert devices[0].is_turned_on is None
    assert fake.calls == []
    assert fake.subscribe_requests == []
