#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class GreeError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class GreeDecodeError(GreeError):
  """A received payload could not be decoded or decrypted. Such payloads are logged and dropped."""
  pass

class GreeTransportError(GreeError):
  """A datagram could not be sent, or the socket could not be bound."""
  pass

class GreeProtocolRejection(GreeError):
  """A device answered with a result code other than 200. Logged, never raised to callers."""
  result_code: object

  def __init__(self, result_code: object, msg: str=""):
      if msg == "":
          msg = f"Device rejected request with result code {result_code}"
      super().__init__(msg)
      self.result_code = result_code

class GreeDeviceUnavailable(GreeError):
  """Device state was requested while the device is not responding to status requests."""
  pass
