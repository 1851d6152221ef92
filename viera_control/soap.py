# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Construction of SOAP requests and extraction of values from SOAP responses.

Nothing here touches the network; the protocol client wraps these helpers.
"""

from __future__ import annotations

import re

from lxml import etree

from .internal_types import *
from .constants import SOAP_ENVELOPE_NS, SOAP_ENCODING_STYLE
from .models import ApplicationEntry

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'

_app_list_re = re.compile(r"'product_id=(?P<id>[\dA-Z]+)'(?P<name>[^']+)")

_parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)

def build_action_xml(action: str, urn: str, arguments_xml: str) -> str:
    """Returns the <u:action> element that carries the arguments of an action."""
    return f'<u:{action} xmlns:u="urn:{urn}">{arguments_xml}</u:{action}>'

def build_envelope(action: str, urn: str, arguments_xml: str) -> str:
    """Returns a complete SOAP request document for an action."""
    return (
        f'{XML_DECLARATION}'
        f'<s:Envelope xmlns:s="{SOAP_ENVELOPE_NS}" s:encodingStyle="{SOAP_ENCODING_STYLE}">'
        f'<s:Body>{build_action_xml(action, urn, arguments_xml)}</s:Body>'
        '</s:Envelope>'
      )

def build_soap_headers(action: str, urn: str, content_length: int) -> Dict[str, str]:
    return {
        "Content-Length": str(content_length),
        "Content-Type": 'text/xml; charset="utf-8"',
        "SOAPAction": f'"urn:{urn}#{action}"',
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Accept": "text/xml",
      }

def build_encrypted_command(session_id: str, sequence_number: int, action: str, urn: str, arguments_xml: str) -> str:
    """Returns the plaintext that is sealed into X_EncInfo for a protected action."""
    return (
        f'<X_SessionId>{session_id}</X_SessionId>'
        f'<X_SequenceNumber>{sequence_number:08d}</X_SequenceNumber>'
        f'<X_OriginalCommand>{build_action_xml(action, urn, arguments_xml)}</X_OriginalCommand>'
      )

def build_encrypted_arguments(app_id: str, enc_info: str) -> str:
    return f'<X_ApplicationId>{app_id}</X_ApplicationId><X_EncInfo>{enc_info}</X_EncInfo>'

def _local_name(name: str) -> str:
    # "{ns}tag" from declared prefixes; "p:tag" survives recovery of undeclared prefixes
    return name.rsplit('}', 1)[-1].rsplit(':', 1)[-1]

def _is_prefixed_attribute(name: str) -> bool:
    return name.startswith('{') or ':' in name

def _strip_element(root: etree._Element) -> etree._Element:
    for el in root.iter():
        if not isinstance(el.tag, str):
            continue
        el.tag = _local_name(el.tag)
        for name in list(el.attrib.keys()):
            if _is_prefixed_attribute(name):
                del el.attrib[name]
    etree.cleanup_namespaces(root)
    return root

def parse_xml(data: Union[str, bytes]) -> etree._Element:
    """Parses an XML document or fragment and strips namespace prefixes from its element names.

    A fragment with several top-level elements (as found inside decrypted payloads) is parsed
    under a synthetic <root> element. Namespace declarations and prefixed attributes are
    dropped; unprefixed attributes are kept.

    Raises ValueError if nothing parseable is found.
    """
    text = data.decode('utf-8', errors='replace') if isinstance(data, bytes) else data
    text = text.strip()
    if text.startswith('<?xml'):
        end = text.find('?>')
        text = text[end + 2:] if end != -1 else text
    root = etree.fromstring(f'<root>{text}</root>'.encode('utf-8'), _parser)
    if root is None or len(root) == 0:
        raise ValueError("No XML elements found")
    _strip_element(root)
    return root[0] if len(root) == 1 else root

def strip_namespaces(data: Union[str, bytes]) -> str:
    """Returns data re-serialized with all namespace prefixes removed from element names."""
    root = parse_xml(data)
    return etree.tostring(root, encoding='unicode')

def find_element(root: etree._Element, name: str) -> Optional[etree._Element]:
    """Returns the first element named name at or below root, or None."""
    return next(root.iter(name), None)

def find_text(root: etree._Element, name: str) -> Optional[str]:
    """Returns the text of the first element named name at or below root; '' for an empty
       element and None if there is no such element."""
    el = find_element(root, name)
    if el is None:
        return None
    return '' if el.text is None else el.text

def parse_app_list(app_list: str) -> List[ApplicationEntry]:
    """Parses the X_AppList value into application entries."""
    return [ ApplicationEntry(m.group('id'), m.group('name')) for m in _app_list_re.finditer(app_list) ]
