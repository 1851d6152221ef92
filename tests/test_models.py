# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import pytest

from viera_control.action_key import ActionKey, hdmi_key, key_code
from viera_control.client_config import TelevisionClientConfig
from viera_control.exceptions import InvalidArgument
from viera_control.models import DeviceIdentity, DiscoveredDevice, DeviceSpecs
from viera_control.util import normalize_mac_address, is_loopback_host

def test_open_identity():
    identity = DeviceIdentity("tv", "10.10.0.10")
    assert not identity.is_encrypted
    assert identity.port == 55000
    assert identity.base_url == "http://10.10.0.10:55000"

def test_encrypted_identity():
    identity = DeviceIdentity("tv", "10.10.0.10", app_id="app", pairing_key="vdj1PiHp9lJ3OhhzSbqNRw==")
    assert identity.is_encrypted

@pytest.mark.parametrize("kwargs", [
    { "app_id": "app" },
    { "pairing_key": "vdj1PiHp9lJ3OhhzSbqNRw==" },
    { "app_id": "app", "pairing_key": "" },
  ])
def test_identity_rejects_partial_credentials(kwargs):
    with pytest.raises(InvalidArgument):
        DeviceIdentity("tv", "10.10.0.10", **kwargs)

def test_identity_treats_empty_credentials_as_absent():
    assert not DeviceIdentity("tv", "10.10.0.10", app_id="", pairing_key="").is_encrypted

def test_identity_rejects_bad_port():
    with pytest.raises(InvalidArgument):
        DeviceIdentity("tv", "10.10.0.10", port=0)

@pytest.mark.parametrize("raw", [ "a8:13:74:b3:03:14", "A8-13-74-B3-03-14", "a81374b30314" ])
def test_mac_normalization(raw):
    assert normalize_mac_address(raw) == "A8:13:74:B3:03:14"
    assert DeviceIdentity("tv", "h", mac_address=raw).mac_address == "A8:13:74:B3:03:14"

@pytest.mark.parametrize("raw", [ "a8:13:74:b3:03", "zz:13:74:b3:03:14", "" ])
def test_mac_normalization_rejects_invalid(raw):
    with pytest.raises(InvalidArgument):
        normalize_mac_address(raw)

def test_loopback_hosts():
    assert is_loopback_host("127.0.0.1")
    assert is_loopback_host("localhost")
    assert not is_loopback_host("10.10.0.10")
    assert not is_loopback_host("tv.example.com")

def test_action_key_parse():
    assert ActionKey.parse("volume_up") is ActionKey.VOLUME_UP
    assert ActionKey.parse("Volume-Up") is ActionKey.VOLUME_UP
    assert ActionKey.parse("NRC_MUTE-ONOFF") is ActionKey.MUTE
    assert ActionKey.parse(ActionKey.POWER) is ActionKey.POWER
    with pytest.raises(InvalidArgument):
        ActionKey.parse("no_such_key")

def test_key_codes():
    assert key_code(ActionKey.POWER) == "NRC_POWER-ONOFF"
    assert key_code("tv") == "NRC_TV-ONOFF"
    assert key_code("NRC_HDMI3-ONOFF") == "NRC_HDMI3-ONOFF"
    for bad in ("NRC_<MUTE>", "NRC_mute-onoff", "NRC_A B", "NRC_"):
        with pytest.raises(InvalidArgument):
            key_code(bad)
    assert hdmi_key(2) == "NRC_HDMI2-ONOFF"
    with pytest.raises(InvalidArgument):
        hdmi_key(0)

def test_discovered_device_equality_ignores_enrichment():
    specs = DeviceSpecs("id", "Panasonic VIErA", "TX-49DX600EA", "49DX600_Series", "Panasonic", "type", False)
    a = DiscoveredDevice("id", "10.10.0.10", 55000, specs=specs)
    b = DiscoveredDevice("id", "10.10.0.10", 55000)
    assert a == b
    assert len({ a, b }) == 1
    assert a.encrypted is False
    assert b.encrypted is None
    assert a.identity(app_id="x", pairing_key="vdj1PiHp9lJ3OhhzSbqNRw==").is_encrypted

def test_config_defaults():
    config = TelevisionClientConfig()
    assert config.timeout == 5.0
    assert config.event_lease == 10
    assert config.reconnect_cooldown == 300.0
    assert config.default_port == 55000

def test_config_from_env():
    config = TelevisionClientConfig.from_env(
        env={
            "VIERA_TIMEOUT": "2.5",
            "VIERA_EVENT_LEASE": "60",
            "VIERA_CALLBACK_HOST": "192.168.1.5",
            "VIERA_PORT": "",
          },
        reconnect_cooldown=1.0,
      )
    assert config.timeout == 2.5
    assert config.event_lease == 60
    assert config.callback_host == "192.168.1.5"
    assert config.reconnect_cooldown == 1.0
    assert config.default_port == 55000

def test_config_from_env_rejects_bad_values():
    with pytest.raises(InvalidArgument):
        TelevisionClientConfig.from_env(env={ "VIERA_TIMEOUT": "soon" })
    with pytest.raises(InvalidArgument):
        TelevisionClientConfig(event_lease=1)
