# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import asyncio
import socket

import pytest

from viera_control.action_key import ActionKey
from viera_control.client import TelevisionApiClient
from viera_control.exceptions import (
    DecryptError,
    InvalidArgument,
    InvalidState,
    TelevisionApiCall,
  )
from viera_control.models import ApplicationEntry, DeviceIdentity, PairingChallenge
from viera_control.session import SessionRegistry

from fake_television import (
    FakeTelevision,
    APP_ID,
    PAIRING_KEY,
    SESSION_ID,
    CHALLENGE_KEY,
    CORRECT_PIN,
    ISSUED_PAIRING_KEY,
    DEVICE_ID,
  )

def open_client(fake: FakeTelevision) -> TelevisionApiClient:
    return TelevisionApiClient(DeviceIdentity("tv", fake.host, fake.port), timeout=2.0)

def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]

def test_get_volume():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                volume = await client.get_volume()
            return volume, fake.calls

    volume, calls = asyncio.run(main())
    assert volume == 20
    assert [ c.action for c in calls ] == [ "GetVolume" ]
    assert "<InstanceID>0</InstanceID><Channel>Master</Channel>" in calls[0].body

def test_set_volume_and_mute():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                await client.set_volume(35)
                await client.set_mute(True)
                return fake.volume, await client.get_mute(), fake.calls

    volume, mute, calls = asyncio.run(main())
    assert volume == 35
    assert mute is True
    assert "<DesiredVolume>35</DesiredVolume>" in calls[0].body
    assert calls[1].action == "SetMute"
    assert "<DesiredMute>1</DesiredMute>" in calls[1].body

@pytest.mark.parametrize("volume", [ -1, 101, True, 20.5, "20" ])
def test_set_volume_rejects_out_of_range(volume):
    async def main():
        client = TelevisionApiClient(DeviceIdentity("tv", "127.0.0.1", unused_port()))
        with pytest.raises(InvalidArgument):
            await client.set_volume(volume)
        await client.close()

    asyncio.run(main())

def test_get_apps():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                return await client.get_apps()

    apps = asyncio.run(main())
    assert len(apps) == 3
    assert apps[0] == ApplicationEntry("0387878700000102", "Apps Market")
    assert ApplicationEntry("0010000200000001", "Netflix") in apps

def test_get_apps_when_turned_off():
    async def main():
        async with FakeTelevision() as fake:
            fake.app_list = ""
            async with open_client(fake) as client:
                with pytest.raises(TelevisionApiCall, match="turned off"):
                    await client.get_apps()

    asyncio.run(main())

def test_get_specs_and_vector_info():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                return await client.get_specs(), await client.get_vector_info()

    specs, vector_info = asyncio.run(main())
    assert specs.serial_number == DEVICE_ID
    assert specs.model_number == "TX-49DX600EA"
    assert specs.model_name == "Panasonic VIErA"
    assert specs.friendly_name == "49DX600_Series"
    assert specs.manufacturer == "Panasonic"
    assert specs.device_type == "urn:panasonic-com:device:p00RemoteController:1"
    assert specs.requires_encryption is False
    assert vector_info.port == 55001

def test_needs_crypto():
    async def main():
        async with FakeTelevision(encrypted=True) as fake:
            async with open_client(fake) as client:
                return await client.needs_crypto()

    assert asyncio.run(main()) is True

def test_send_key_and_launch_app():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                await client.send_key(ActionKey.VOLUME_UP)
                await client.send_key("NRC_HDMI2-ONOFF")
                await client.launch_app("0010000200000001")
                await client.launch_app("netflix")
            return fake.calls

    calls = asyncio.run(main())
    assert [ c.action for c in calls ] == [ "X_SendKey", "X_SendKey", "X_LaunchApp", "X_LaunchApp" ]
    assert "<X_KeyEvent>NRC_VOLUP-ONOFF</X_KeyEvent>" in calls[0].body
    assert "<X_KeyEvent>NRC_HDMI2-ONOFF</X_KeyEvent>" in calls[1].body
    assert "<X_AppType>vc_app</X_AppType><X_LaunchKeyword>product_id=0010000200000001</X_LaunchKeyword>" in calls[2].body
    assert "<X_LaunchKeyword>resource_id=netflix</X_LaunchKeyword>" in calls[3].body

def test_http_error_status():
    async def main():
        async with FakeTelevision() as fake:
            fake.fail_actions.add("GetVolume")
            async with open_client(fake) as client:
                with pytest.raises(TelevisionApiCall) as exc_info:
                    await client.get_volume()
            return exc_info.value

    error = asyncio.run(main())
    assert error.status_code == 500
    assert error.request is not None
    assert error.request.action == "GetVolume"

def test_unreachable_television():
    async def main():
        async with TelevisionApiClient(DeviceIdentity("tv", "127.0.0.1", unused_port()), timeout=1.0) as client:
            with pytest.raises(TelevisionApiCall) as exc_info:
                await client.get_volume()
        return exc_info.value

    error = asyncio.run(main())
    assert error.response is None
    assert error.status_code is None

def test_protected_action_requires_session():
    async def main():
        identity = DeviceIdentity("tv", "127.0.0.1", unused_port(), app_id=APP_ID, pairing_key=PAIRING_KEY)
        async with TelevisionApiClient(identity) as client:
            with pytest.raises(InvalidState):
                await client.send_key(ActionKey.MUTE)

    asyncio.run(main())

def test_encrypted_commands_carry_increasing_sequence_numbers():
    async def main():
        async with FakeTelevision(encrypted=True) as fake:
            sessions = SessionRegistry()
            identity = DeviceIdentity("tv", fake.host, fake.port, app_id=APP_ID, pairing_key=PAIRING_KEY)
            sessions.create(identity.id, PAIRING_KEY)
            async with TelevisionApiClient(identity, sessions=sessions) as client:
                session = await client.request_session_id()
                await client.send_key(ActionKey.MUTE)
                await client.send_key(ActionKey.VOLUME_DOWN)
                apps = await client.get_apps()
                volume = await client.get_volume()
            return session, apps, volume, fake.calls

    session, apps, volume, calls = asyncio.run(main())
    assert session.session_id == SESSION_ID
    assert [ c.action for c in calls ] == [
        "X_GetEncryptSessionId",
        "X_EncryptedCommand",
        "X_EncryptedCommand",
        "X_EncryptedCommand",
        "GetVolume",
      ]
    # the handshake itself is sent in the clear, with the application id sealed inside
    assert f"<X_ApplicationId>{APP_ID}</X_ApplicationId>" in calls[0].body
    assert "<X_EncInfo>" in calls[0].body
    sealed = calls[1:4]
    assert [ c.effective_action for c in sealed ] == [ "X_SendKey", "X_SendKey", "X_GetAppList" ]
    for i, call in enumerate(sealed, start=1):
        assert call.plaintext is not None
        assert f"<X_SessionId>{SESSION_ID}</X_SessionId>" in call.plaintext
        assert f"<X_SequenceNumber>{i:08d}</X_SequenceNumber>" in call.plaintext
    assert "<X_KeyEvent>NRC_MUTE-ONOFF</X_KeyEvent>" in sealed[0].plaintext
    assert len(apps) == 3
    assert volume == 20

def test_pairing_with_correct_pin():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                challenge = await client.request_pin_code("My <Client>")
                result = await client.authorize_pin_code(CORRECT_PIN, challenge)
            return challenge, result, fake.calls

    challenge, result, calls = asyncio.run(main())
    assert challenge.challenge_key == CHALLENGE_KEY
    assert "<X_DeviceName>My &lt;Client&gt;</X_DeviceName>" in calls[0].body
    assert result.app_id == APP_ID
    assert result.pairing_key == ISSUED_PAIRING_KEY

def test_pairing_with_wrong_pin_fails_integrity_check():
    async def main():
        async with FakeTelevision() as fake:
            async with open_client(fake) as client:
                with pytest.raises(DecryptError):
                    await client.authorize_pin_code("0000", PairingChallenge(CHALLENGE_KEY))

    asyncio.run(main())
