#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .client import ApiRequest, ApiResponse

class VieraError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class InvalidArgument(VieraError, ValueError):
  """A caller-supplied value is malformed or out of range."""
  pass

class InvalidState(VieraError):
  """An operation was attempted in a state that does not permit it; e.g., an
     encrypted command without a session, or authorizing without a pending challenge."""
  pass

class TelevisionApiError(VieraError):
  """Umbrella for failures talking to a television."""
  pass

class TelevisionApiCall(TelevisionApiError):
  """A request could not be sent, the television answered with a non-2xx status,
     or the response did not have the expected shape.

     The request that was sent, and the response if one was received, are kept
     for diagnostics.
  """

  request: Optional[ApiRequest]
  """The request that failed, if it was built"""

  response: Optional[ApiResponse]
  """The response received, or None if the request never got an answer"""

  def __init__(
        self,
        msg: str,
        request: Optional[ApiRequest]=None,
        response: Optional[ApiResponse]=None
      ):
    super().__init__(msg)
    self.request = request
    self.response = response

  @property
  def status_code(self) -> Optional[int]:
    """The HTTP status of the response, if one was received"""
    return None if self.response is None else self.response.status_code

class EncryptError(TelevisionApiError):
  """A payload could not be sealed."""
  pass

class DecryptError(TelevisionApiError):
  """A sealed payload failed its integrity check or could not be decoded."""
  pass
