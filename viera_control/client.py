# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
TelevisionApiClient -- A SOAP client for one television that can:

  1. Invoke UPnP actions on the rendering control and network remote control services
  2. Transparently seal remote-control actions in the encrypted envelope when the television is paired
  3. Read the device and service description documents
  4. Run the PIN pairing handshake
"""

from __future__ import annotations

import asyncio
from xml.sax.saxutils import escape

import aiohttp
from lxml import etree

from .internal_types import *
from .pkg_logging import logger
from .constants import (
    DEFAULT_TIMEOUT,
    URN_RENDERING_CONTROL,
    URN_REMOTE_CONTROL,
    URL_CONTROL_DMR,
    URL_CONTROL_NRC,
    URL_CONTROL_NRC_DDD,
    URL_CONTROL_NRC_DEF,
    UNENCRYPTED_ACTIONS,
    APP_TYPE,
    PRODUCT_ID_LENGTH,
  )
from .exceptions import TelevisionApiCall, InvalidArgument, InvalidState
from .action_key import ActionKey, key_code
from .crypto import seal, open_sealed
from .keys import derive_challenge_keys
from .session import Session, SessionRegistry
from .models import (
    DeviceIdentity,
    DeviceSpecs,
    ApplicationEntry,
    VectorInfo,
    PairingChallenge,
    PairingResult,
  )
from .soap import (
    build_envelope,
    build_soap_headers,
    build_encrypted_command,
    build_encrypted_arguments,
    parse_xml,
    find_element,
    find_text,
    parse_app_list,
  )
from .util import CaseInsensitiveDict

VOLUME_ARGUMENTS = "<InstanceID>0</InstanceID><Channel>Master</Channel>"

class ApiRequest:
    """An HTTP request sent to the television, kept for diagnostics."""

    method: str
    url: str
    headers: Dict[str, str]
    body: bytes

    action: Optional[str]
    """The SOAP action name, or None for non-SOAP requests"""

    def __init__(self, method: str, url: str, headers: Optional[Mapping[str, str]]=None, body: bytes=b'', action: Optional[str]=None):
        self.method = method
        self.url = url
        self.headers = {} if headers is None else dict(headers)
        self.body = body
        self.action = action

    def __str__(self) -> str:
        return f"ApiRequest({self.method} {self.url}, action={self.action})"

    def __repr__(self) -> str:
        return str(self)

class ApiResponse:
    """An HTTP response received from the television."""

    status_code: int
    headers: CaseInsensitiveDict[str]
    body: bytes

    def __init__(self, status_code: int, headers: Mapping[str, str], body: bytes):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers)
        self.body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode('utf-8', errors='replace')

    def __str__(self) -> str:
        return f"ApiResponse(status_code={self.status_code}, body={len(self.body)} bytes)"

    def __repr__(self) -> str:
        return str(self)

class TelevisionApiClient(AsyncContextManager['TelevisionApiClient']):
    """
    A SOAP client for one television.

    Protected requests (those sealed in the encrypted envelope) are serialized so that
    sequence numbers reach the television in order. Unprotected requests run concurrently.
    """

    identity: DeviceIdentity
    """Who we are talking to, and the credentials to use"""

    sessions: SessionRegistry
    """Owner of the encrypted session for identity.id"""

    timeout: float
    """Timeout for each HTTP request, in seconds"""

    _http: Optional[aiohttp.ClientSession] = None
    _owns_http: bool = True
    _lock: asyncio.Lock

    def __init__(
            self,
            identity: DeviceIdentity,
            sessions: Optional[SessionRegistry]=None,
            timeout: float=DEFAULT_TIMEOUT,
            http_session: Optional[aiohttp.ClientSession]=None,
          ):
        """Create a client for one television.

        Parameters:
            identity:      The television and the credentials to use.
            sessions:      Registry holding the encrypted session, shared with other clients if desired.
                           Defaults to a private registry.
            timeout:       Timeout for each HTTP request, in seconds.
            http_session:  An aiohttp.ClientSession to use. If None, one is created on first use and
                           closed by close().
        """
        self.identity = identity
        self.sessions = SessionRegistry() if sessions is None else sessions
        self.timeout = timeout
        if http_session is not None:
            self._http = http_session
            self._owns_http = False
        self._lock = asyncio.Lock()

    @property
    def session(self) -> Optional[Session]:
        return self.sessions.get(self.identity.id)

    @property
    def base_url(self) -> str:
        return self.identity.base_url

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.close()
        self._http = None

    async def __aenter__(self) -> TelevisionApiClient:
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.close()
        return False

    async def send(self, request: ApiRequest, timeout: Optional[float]=None) -> ApiResponse:
        """Sends a raw HTTP request and returns the response, whatever its status.

        Raises TelevisionApiCall (with response None) if the request cannot be sent or times out.
        """
        http = self._get_http()
        client_timeout = None if timeout is None else aiohttp.ClientTimeout(total=timeout)
        logger.debug(f"Sending {request}: {request.body!r}")
        try:
            async with http.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    data=request.body if len(request.body) > 0 else None,
                    timeout=client_timeout,
                  ) as resp:
                body = await resp.read()
                response = ApiResponse(resp.status, resp.headers, body)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TelevisionApiCall(f"Request {request.method} {request.url} failed: {e!r}", request) from e
        logger.debug(f"Received {response} for {request}: {response.body!r}")
        return response

    async def get_document(self, path: str) -> ApiResponse:
        """GETs a description document. Non-2xx statuses raise TelevisionApiCall."""
        request = ApiRequest("GET", f"{self.base_url}{path}")
        response = await self.send(request)
        if not response.ok:
            raise TelevisionApiCall(f"GET {path} returned HTTP {response.status_code}", request, response)
        return response

    def _should_seal(self, urn: str, action: str, protected: bool) -> bool:
        return (
            protected
            and self.identity.is_encrypted
            and urn == URN_REMOTE_CONTROL
            and action not in UNENCRYPTED_ACTIONS
          )

    def _usable_session(self) -> Session:
        session = self.session
        if session is None or not session.is_usable or not session.has_id:
            raise InvalidState(f"No encrypted session with {self.identity}; connect first")
        return session

    async def invoke(
            self,
            action_path: str,
            urn: str,
            action: str,
            arguments_xml: str,
            protected: bool=True,
          ) -> etree._Element:
        """Invokes a SOAP action and returns the parsed response.

        Parameters:
            action_path:    The control URL path; e.g. "/nrc/control_0".
            urn:            The service URN, without the "urn:" prefix.
            action:         The action name; e.g. "X_SendKey".
            arguments_xml:  The argument elements, already serialized.
            protected:      If False, the action is never sealed even in encrypted mode.

        Returns the response root with namespace prefixes stripped. If the response carries
        an X_EncResult and a session exists, the opened payload is returned instead.

        Raises:
            InvalidState:       The action must be sealed but there is no usable session.
            TelevisionApiCall:  The request failed, returned a non-2xx status, or the response is not XML.
            DecryptError:       A sealed response failed its integrity check.
        """
        if self._should_seal(urn, action, protected):
            session = self._usable_session()
            async with self._lock:
                assert self.identity.app_id is not None
                sequence_number = session.next_sequence_number()
                assert session.session_id is not None
                command = build_encrypted_command(session.session_id, sequence_number, action, urn, arguments_xml)
                logger.debug(f"Sealing {action} with sequence number {sequence_number:08d}")
                enc_arguments = build_encrypted_arguments(self.identity.app_id, session.seal(command))
                return await self._call(action_path, urn, "X_EncryptedCommand", enc_arguments)
        return await self._call(action_path, urn, action, arguments_xml)

    async def _call(self, action_path: str, urn: str, action: str, arguments_xml: str) -> etree._Element:
        body = build_envelope(action, urn, arguments_xml).encode('utf-8')
        request = ApiRequest(
            "POST",
            f"{self.base_url}{action_path}",
            headers=build_soap_headers(action, urn, len(body)),
            body=body,
            action=action,
          )
        response = await self.send(request)
        if not response.ok:
            raise TelevisionApiCall(f"Action {action} returned HTTP {response.status_code}", request, response)
        try:
            root = parse_xml(response.body)
        except (ValueError, etree.LxmlError) as e:
            raise TelevisionApiCall(f"Received response to {action} is not valid", request, response) from e
        session = self.session
        enc_result = find_text(root, "X_EncResult")
        if enc_result is not None and session is not None and session.is_usable:
            payload = session.open(enc_result)
            logger.debug(f"Opened sealed response to {action}: {payload!r}")
            try:
                root = parse_xml(payload)
            except (ValueError, etree.LxmlError) as e:
                raise TelevisionApiCall(f"Decrypted response to {action} is not valid", request, response) from e
        return root

    def _require_text(self, root: etree._Element, name: str, action: str) -> str:
        value = find_text(root, name)
        if value is None:
            raise TelevisionApiCall(f"Received response to {action} is not valid: missing {name}")
        return value

    def _require_int(self, root: etree._Element, name: str, action: str) -> int:
        value = self._require_text(root, name, action)
        try:
            return int(value)
        except ValueError as e:
            raise TelevisionApiCall(f"Received response to {action} is not valid: {name}={value!r}") from e

    async def request_session_id(self) -> Session:
        """Runs the X_GetEncryptSessionId handshake and records the issued session id.

        Raises InvalidState if the television is not in encrypted mode or no session keys exist.
        """
        session = self.session
        if not self.identity.is_encrypted or session is None or not session.is_usable:
            raise InvalidState(f"No session keys for {self.identity}")
        assert self.identity.app_id is not None
        app_id_xml = f"<X_ApplicationId>{self.identity.app_id}</X_ApplicationId>"
        arguments = build_encrypted_arguments(self.identity.app_id, session.seal(app_id_xml))
        root = await self.invoke(URL_CONTROL_NRC, URN_REMOTE_CONTROL, "X_GetEncryptSessionId", arguments)
        session_id = self._require_text(root, "X_SessionId", "X_GetEncryptSessionId")
        session.assign_id(session_id)
        logger.info(f"Encrypted session established with {self.identity.host}")
        return session

    async def get_specs(self) -> DeviceSpecs:
        response = await self.get_document(URL_CONTROL_NRC_DDD)
        try:
            root = parse_xml(response.body)
        except (ValueError, etree.LxmlError) as e:
            raise TelevisionApiCall("Received device description is not valid", response=response) from e
        device = find_element(root, "device")
        if device is None:
            raise TelevisionApiCall("Received device description is not valid: missing device", response=response)
        udn = find_text(device, "UDN") or ''
        requires_encryption = await self.needs_crypto()
        return DeviceSpecs(
            serial_number=udn[5:] if udn.startswith("uuid:") else udn,
            model_name=find_text(device, "modelName") or '',
            model_number=find_text(device, "modelNumber") or '',
            friendly_name=find_text(device, "friendlyName"),
            manufacturer=find_text(device, "manufacturer") or '',
            device_type=find_text(device, "deviceType") or '',
            requires_encryption=requires_encryption,
          )

    async def needs_crypto(self) -> bool:
        """True if the service description lists X_GetEncryptSessionId."""
        response = await self.get_document(URL_CONTROL_NRC_DEF)
        return b"X_GetEncryptSessionId" in response.body

    async def get_apps(self) -> List[ApplicationEntry]:
        """Returns the installed applications.

        Raises TelevisionApiCall if the list is empty, which the television reports while it is off.
        """
        root = await self.invoke(URL_CONTROL_NRC, URN_REMOTE_CONTROL, "X_GetAppList", "None")
        app_list = self._require_text(root, "X_AppList", "X_GetAppList")
        if app_list == '':
            raise TelevisionApiCall("Device is turned off. Apps could not be loaded")
        return parse_app_list(app_list)

    async def get_vector_info(self) -> VectorInfo:
        root = await self.invoke(URL_CONTROL_NRC, URN_REMOTE_CONTROL, "X_GetVectorInfo", "None")
        return VectorInfo(self._require_int(root, "X_PortNumber", "X_GetVectorInfo"))

    async def get_volume(self) -> int:
        root = await self.invoke(URL_CONTROL_DMR, URN_RENDERING_CONTROL, "GetVolume", VOLUME_ARGUMENTS)
        return self._require_int(root, "CurrentVolume", "GetVolume")

    async def set_volume(self, volume: int) -> None:
        if isinstance(volume, bool) or not isinstance(volume, int) or not (0 <= volume <= 100):
            raise InvalidArgument(f"Volume must be an integer between 0 and 100, got {volume!r}")
        await self.invoke(
            URL_CONTROL_DMR,
            URN_RENDERING_CONTROL,
            "SetVolume",
            f"{VOLUME_ARGUMENTS}<DesiredVolume>{volume}</DesiredVolume>",
          )

    async def get_mute(self) -> bool:
        root = await self.invoke(URL_CONTROL_DMR, URN_RENDERING_CONTROL, "GetMute", VOLUME_ARGUMENTS)
        return self._require_text(root, "CurrentMute", "GetMute").strip() == "1"

    async def set_mute(self, mute: bool) -> None:
        await self.invoke(
            URL_CONTROL_DMR,
            URN_RENDERING_CONTROL,
            "SetMute",
            f"{VOLUME_ARGUMENTS}<DesiredMute>{1 if mute else 0}</DesiredMute>",
          )

    async def send_key(self, key: Union[ActionKey, str]) -> None:
        code = key_code(key)
        await self.invoke(URL_CONTROL_NRC, URN_REMOTE_CONTROL, "X_SendKey", f"<X_KeyEvent>{code}</X_KeyEvent>")

    async def launch_app(self, app_id: str) -> None:
        if app_id == '':
            raise InvalidArgument("Application id must not be empty")
        keyword = "product_id" if len(app_id) == PRODUCT_ID_LENGTH else "resource_id"
        await self.invoke(
            URL_CONTROL_NRC,
            URN_REMOTE_CONTROL,
            "X_LaunchApp",
            f"<X_AppType>{APP_TYPE}</X_AppType><X_LaunchKeyword>{keyword}={escape(app_id)}</X_LaunchKeyword>",
          )

    async def request_pin_code(self, name: str) -> PairingChallenge:
        """Asks the television to display a PIN and returns the challenge needed to authorize it."""
        root = await self.invoke(
            URL_CONTROL_NRC,
            URN_REMOTE_CONTROL,
            "X_DisplayPinCode",
            f"<X_DeviceName>{escape(name)}</X_DeviceName>",
          )
        challenge_key = self._require_text(root, "X_ChallengeKey", "X_DisplayPinCode")
        logger.info(f"PIN code requested from {self.identity.host}")
        return PairingChallenge(challenge_key)

    async def authorize_pin_code(self, pin: str, challenge: PairingChallenge) -> PairingResult:
        """Sends the PIN sealed under the challenge keys and returns the issued credentials.

        Raises:
            DecryptError:       The television's answer could not be opened with the challenge keys,
                                which is what a wrong PIN produces.
            TelevisionApiCall:  The request failed or the answer lacks the credentials.
        """
        keys = derive_challenge_keys(challenge.challenge_key)
        auth_info = seal(f"<X_PinCode>{escape(pin)}</X_PinCode>", keys.cipher_key, keys.iv, keys.hmac_key)
        root = await self.invoke(
            URL_CONTROL_NRC,
            URN_REMOTE_CONTROL,
            "X_RequestAuth",
            f"<X_AuthInfo>{auth_info}</X_AuthInfo>",
          )
        auth_result = self._require_text(root, "X_AuthResult", "X_RequestAuth")
        payload = open_sealed(auth_result, keys.cipher_key, keys.iv, keys.hmac_key)
        try:
            inner = parse_xml(payload)
        except (ValueError, etree.LxmlError) as e:
            raise TelevisionApiCall("Decrypted response to X_RequestAuth is not valid") from e
        app_id = self._require_text(inner, "X_ApplicationId", "X_RequestAuth")
        pairing_key = self._require_text(inner, "X_Keyword", "X_RequestAuth")
        logger.info(f"Paired with {self.identity.host}")
        return PairingResult(app_id, pairing_key)

    def __str__(self) -> str:
        return f"TelevisionApiClient({self.identity})"

    def __repr__(self) -> str:
        return str(self)
