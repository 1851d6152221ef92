# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

import pytest

from viera_control.constants import URN_REMOTE_CONTROL, URN_RENDERING_CONTROL
from viera_control.models import ApplicationEntry
from viera_control.soap import (
    build_envelope,
    build_soap_headers,
    build_encrypted_command,
    parse_xml,
    strip_namespaces,
    find_text,
    parse_app_list,
  )

def test_envelope_shape():
    envelope = build_envelope("X_SendKey", URN_REMOTE_CONTROL, "<X_KeyEvent>NRC_MUTE-ONOFF</X_KeyEvent>")
    assert envelope.startswith('<?xml version="1.0" encoding="utf-8"?><s:Envelope ')
    assert (
        '<s:Body><u:X_SendKey xmlns:u="urn:panasonic-com:service:p00NetworkControl:1">'
        '<X_KeyEvent>NRC_MUTE-ONOFF</X_KeyEvent></u:X_SendKey></s:Body>'
      ) in envelope

def test_soap_headers():
    headers = build_soap_headers("GetVolume", URN_RENDERING_CONTROL, 123)
    assert headers["SOAPAction"] == '"urn:schemas-upnp-org:service:RenderingControl:1#GetVolume"'
    assert headers["Content-Length"] == "123"
    assert headers["Content-Type"] == 'text/xml; charset="utf-8"'

def test_encrypted_command_pads_sequence_number():
    command = build_encrypted_command("99", 7, "X_SendKey", URN_REMOTE_CONTROL, "<X_KeyEvent>NRC_TV-ONOFF</X_KeyEvent>")
    assert command.startswith("<X_SessionId>99</X_SessionId><X_SequenceNumber>00000007</X_SequenceNumber>")
    assert "<X_OriginalCommand><u:X_SendKey " in command

def test_parse_xml_strips_prefixes():
    root = parse_xml(
        '<?xml version="1.0"?>'
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" s:encodingStyle="x">'
        '<s:Body><u:GetVolumeResponse xmlns:u="urn:schemas-upnp-org:service:RenderingControl:1">'
        '<CurrentVolume>20</CurrentVolume>'
        '</u:GetVolumeResponse></s:Body></s:Envelope>'
      )
    assert root.tag == "Envelope"
    assert root.attrib == {}
    assert [ el.tag for el in root.iter() ] == [ "Envelope", "Body", "GetVolumeResponse", "CurrentVolume" ]
    assert find_text(root, "CurrentVolume") == "20"

def test_parse_xml_accepts_fragments():
    root = parse_xml(b"<X_ApplicationId>app</X_ApplicationId><X_SessionId>12</X_SessionId>")
    assert find_text(root, "X_ApplicationId") == "app"
    assert find_text(root, "X_SessionId") == "12"

def test_find_text_distinguishes_empty_and_missing():
    root = parse_xml("<a><b/></a>")
    assert find_text(root, "b") == ""
    assert find_text(root, "c") is None

def test_parse_xml_rejects_non_xml():
    with pytest.raises(ValueError):
        parse_xml("not xml at all")

def test_strip_namespaces_keeps_plain_attributes():
    text = strip_namespaces('<p:a xmlns:p="urn:x" p:q="1" r="2"><p:b>t</p:b></p:a>')
    assert text == '<a r="2"><b>t</b></a>'

def test_parse_app_list():
    apps = parse_app_list(
        "vc_app'product_id=0387878700000102'Apps Market'http://icon/1.png'"
        "vc_app'product_id=0010000200000001'Netflix'http://icon/2.png'"
      )
    assert apps == [
        ApplicationEntry("0387878700000102", "Apps Market"),
        ApplicationEntry("0010000200000001", "Netflix"),
      ]

def test_parse_app_list_empty():
    assert parse_app_list("") == []

def test_parse_app_list_single_unterminated_entry():
    assert parse_app_list("'product_id=0010000200000001'Netflix") == [
        ApplicationEntry("0010000200000001", "Netflix"),
      ]
