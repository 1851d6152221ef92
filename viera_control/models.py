# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Value objects passed between the protocol client, the event subscriber, discovery and callers.
"""

from __future__ import annotations

from .internal_types import *
from .constants import DEFAULT_PORT
from .exceptions import InvalidArgument
from .util import normalize_mac_address

class DeviceIdentity:
    """Caller-supplied parameters that identify and authenticate against one television.

    A television is in encrypted mode when both app_id and pairing_key are given, and in
    open mode when neither is. Supplying only one of them is rejected.
    """

    id: str
    """A stable device id; typically the UDN without its "uuid:" prefix"""

    host: str
    """Hostname or IP address of the television"""

    port: int
    """TCP port of the UPnP control endpoints"""

    app_id: Optional[str]
    """The X_ApplicationId returned by pairing, or None in open mode"""

    pairing_key: Optional[str]
    """The base64 X_Keyword returned by pairing, or None in open mode"""

    mac_address: Optional[str]
    """Normalized MAC address used for wake-on-LAN, if known"""

    def __init__(
            self,
            id: str,
            host: str,
            port: int=DEFAULT_PORT,
            app_id: Optional[str]=None,
            pairing_key: Optional[str]=None,
            mac_address: Optional[str]=None,
          ):
        if app_id == '':
            app_id = None
        if pairing_key == '':
            pairing_key = None
        if (app_id is None) != (pairing_key is None):
            raise InvalidArgument("app_id and pairing_key must be provided together")
        if not (0 < port < 65536):
            raise InvalidArgument(f"Invalid port: {port}")
        self.id = id
        self.host = host
        self.port = port
        self.app_id = app_id
        self.pairing_key = pairing_key
        self.mac_address = None if mac_address is None or mac_address == '' else normalize_mac_address(mac_address)

    @property
    def is_encrypted(self) -> bool:
        return self.app_id is not None and self.pairing_key is not None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return f"DeviceIdentity(id={self.id}, host={self.host}, port={self.port}, encrypted={self.is_encrypted})"

    def __repr__(self) -> str:
        return str(self)

class DeviceSpecs:
    """Description of a television, read from its device and service description documents."""

    serial_number: str
    model_name: str
    model_number: str
    friendly_name: Optional[str]
    manufacturer: str
    device_type: str

    requires_encryption: bool
    """True if the television only accepts remote-control actions inside the encrypted envelope"""

    def __init__(
            self,
            serial_number: str,
            model_name: str,
            model_number: str,
            friendly_name: Optional[str],
            manufacturer: str,
            device_type: str,
            requires_encryption: bool,
          ):
        self.serial_number = serial_number
        self.model_name = model_name
        self.model_number = model_number
        self.friendly_name = friendly_name
        self.manufacturer = manufacturer
        self.device_type = device_type
        self.requires_encryption = requires_encryption

    def to_jsonable(self) -> JsonableDict:
        return {
            "serial_number": self.serial_number,
            "model_name": self.model_name,
            "model_number": self.model_number,
            "friendly_name": self.friendly_name,
            "manufacturer": self.manufacturer,
            "device_type": self.device_type,
            "requires_encryption": self.requires_encryption,
          }

    def __str__(self) -> str:
        return f"DeviceSpecs({self.to_jsonable()})"

    def __repr__(self) -> str:
        return str(self)

class ApplicationEntry:
    """An application installed on the television."""

    id: str
    """The product id used to launch the application"""

    name: str

    def __init__(self, id: str, name: str):
        self.id = id
        self.name = name

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ApplicationEntry):
            return False
        return self.id == other.id and self.name == other.name

    def __hash__(self) -> int:
        return hash((self.id, self.name))

    def to_jsonable(self) -> JsonableDict:
        return { "id": self.id, "name": self.name }

    def __str__(self) -> str:
        return f"ApplicationEntry(id={self.id}, name={self.name})"

    def __repr__(self) -> str:
        return str(self)

class VectorInfo:
    """Result of X_GetVectorInfo."""

    port: int
    """The port of the television's vector (drawing) service"""

    def __init__(self, port: int):
        self.port = port

    def __str__(self) -> str:
        return f"VectorInfo(port={self.port})"

    def __repr__(self) -> str:
        return str(self)

class TvEvent:
    """State pushed by the television in a GENA NOTIFY.

    A field is None when the television did not report it and no earlier value is known.
    """

    screen_state: Optional[bool]
    """True if the screen is on"""

    input_mode: Optional[str]
    """Lower-cased input mode; e.g. "tv" or "hdmi1" """

    def __init__(self, screen_state: Optional[bool]=None, input_mode: Optional[str]=None):
        self.screen_state = screen_state
        self.input_mode = input_mode

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, TvEvent):
            return False
        return self.screen_state == other.screen_state and self.input_mode == other.input_mode

    def __str__(self) -> str:
        return f"TvEvent(screen_state={self.screen_state}, input_mode={self.input_mode})"

    def __repr__(self) -> str:
        return str(self)

class PairingChallenge:
    """A pending PIN challenge. The PIN itself is shown on the television's screen."""

    challenge_key: str
    """Base64 X_ChallengeKey returned by X_DisplayPinCode"""

    def __init__(self, challenge_key: str):
        self.challenge_key = challenge_key

    def __str__(self) -> str:
        return f"PairingChallenge(challenge_key={self.challenge_key})"

    def __repr__(self) -> str:
        return str(self)

class PairingResult:
    """Credentials issued by a successful X_RequestAuth. Callers persist these and pass
       them back in a DeviceIdentity."""

    app_id: str
    pairing_key: str

    def __init__(self, app_id: str, pairing_key: str):
        self.app_id = app_id
        self.pairing_key = pairing_key

    def to_jsonable(self) -> JsonableDict:
        return { "app_id": self.app_id, "pairing_key": self.pairing_key }

    def __str__(self) -> str:
        return f"PairingResult(app_id={self.app_id})"

    def __repr__(self) -> str:
        return str(self)

class DiscoveredDevice:
    """A television found on the LAN.

    Equality and hashing use only (id, host, port); the enrichment fields are
    best-effort extras.
    """

    id: str
    host: str
    port: int

    specs: Optional[DeviceSpecs] = None
    """Device description, if it could be read"""

    applications: List[ApplicationEntry]
    """Installed applications; empty if encrypted, off, or unreadable"""

    is_turned_on: Optional[bool] = None
    """Screen state at discovery time, if known"""

    def __init__(
            self,
            id: str,
            host: str,
            port: int=DEFAULT_PORT,
            specs: Optional[DeviceSpecs]=None,
            applications: Optional[Iterable[ApplicationEntry]]=None,
            is_turned_on: Optional[bool]=None,
          ):
        self.id = id
        self.host = host
        self.port = port
        self.specs = specs
        self.applications = [] if applications is None else list(applications)
        self.is_turned_on = is_turned_on

    @property
    def encrypted(self) -> Optional[bool]:
        """True if the television requires pairing, or None if its specs are unknown"""
        return None if self.specs is None else self.specs.requires_encryption

    def identity(self, **kwargs: Any) -> DeviceIdentity:
        """Returns a DeviceIdentity for this device; kwargs supply app_id, pairing_key, mac_address."""
        return DeviceIdentity(self.id, self.host, self.port, **kwargs)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, DiscoveredDevice):
            return False
        return (self.id, self.host, self.port) == (other.id, other.host, other.port)

    def __hash__(self) -> int:
        return hash((self.id, self.host, self.port))

    def to_jsonable(self) -> JsonableDict:
        result: JsonableDict = {
            "id": self.id,
            "host": self.host,
            "port": self.port,
            "encrypted": self.encrypted,
            "is_turned_on": self.is_turned_on,
            "specs": None if self.specs is None else self.specs.to_jsonable(),
            "applications": [ app.to_jsonable() for app in self.applications ],
          }
        return result

    def __str__(self) -> str:
        return f"DiscoveredDevice(id={self.id}, host={self.host}, port={self.port})"

    def __repr__(self) -> str:
        return str(self)
