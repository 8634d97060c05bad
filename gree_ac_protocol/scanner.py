#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Discovery of Gree devices on the local network.

A client broadcasts an unencrypted {"t": "scan"} request; every device that hears it
answers with a pack message (i == 1, empty tcid) whose payload, encrypted with the
generic key, describes the device:

    {"t": "dev", "mac": "...", "brand": "gree", "model": "...", "name": "...", "ver": "...", ...}

The scanner itself is stateless; how often and how many times to scan is up to the
owner (see GreeClient).
"""

from __future__ import annotations

import time
import datetime

from .internal_types import *
from .pkg_logging import logger
from .exceptions import GreeDecodeError, GreeTransportError
from .crypto import GreeCipher
from .gree_message import GreeMessage

if TYPE_CHECKING:
    from .gree_socket import GreeSocketBinding

class GreeDeviceInfo:
    """The identity of a discovered device, taken from its scan response."""

    mac: str
    """The MAC address of the device; the unique device id used on the wire."""

    address: str
    """The IP address the scan response came from."""

    brand: str
    model: str
    name: str

    version: str
    """The firmware version string."""

    monotonic_time: float
    """The local time (in seconds) since an arbitrary point in the past at which
       the scan response was received, as returned by time.monotonic()."""

    utc_time: datetime.datetime
    """The UTC time at which the scan response was received."""

    def __init__(
            self,
            mac: str,
            address: str,
            brand: str="",
            model: str="",
            name: str="",
            version: str="",
          ) -> None:
        self.mac = mac
        self.address = address
        self.brand = brand
        self.model = model
        self.name = name
        self.version = version
        self.monotonic_time = time.monotonic()
        self.utc_time = datetime.datetime.now(datetime.timezone.utc)

    def to_jsonable(self) -> JsonableDict:
        return {
            "mac": self.mac,
            "address": self.address,
            "brand": self.brand,
            "model": self.model,
            "name": self.name,
            "version": self.version,
            "utc_time": self.utc_time.isoformat(),
          }

    def __str__(self) -> str:
        return f"GreeDeviceInfo(mac={self.mac}, address={self.address}, name={self.name!r})"

    def __repr__(self) -> str:
        return str(self)

def scan(socket_binding: GreeSocketBinding, address: str, port: int) -> bool:
    """Broadcasts a single scan request. Returns False (after logging) if it could not be sent."""
    logger.debug(f"Sending scan request to {address}:{port}")
    try:
        socket_binding.sendto(GreeMessage.make_scan(), (address, port))
    except GreeTransportError as e:
        logger.error(f"Scan request failed: {e}")
        return False
    return True

def _str_field(payload: JsonableDict, name: str) -> str:
    value = payload.get(name)
    return value if isinstance(value, str) else ""

def parse_dev_response(message: GreeMessage, src_addr: HostAndPort, cipher: GreeCipher) -> Optional[GreeDeviceInfo]:
    """Extracts a GreeDeviceInfo from a scan response.

    Returns None if the message is not a scan response or cannot be decoded.
    """
    if not message.is_dev_response:
        return None
    pack = message.pack
    assert not pack is None
    try:
        payload = cipher.decrypt(pack)
    except GreeDecodeError as e:
        logger.info(f"Dropping undecodable scan response from {src_addr}: {e}")
        return None
    logger.debug(f"Decrypted scan response from {src_addr}: {payload}")
    if payload.get('t') != 'dev':
        return None
    mac = payload.get('mac')
    if not isinstance(mac, str) or mac == '':
        # the envelope cid of a scan response is also the device mac
        mac = message.cid
    if mac is None or mac == '':
        logger.info(f"Dropping scan response without a MAC address from {src_addr}")
        return None
    return GreeDeviceInfo(
        mac=mac,
        address=src_addr[0],
        brand=_str_field(payload, 'brand'),
        model=_str_field(payload, 'model'),
        name=_str_field(payload, 'name'),
        version=_str_field(payload, 'ver'),
      )
