# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package gree_ac_protocol implements the local network protocol of Wi-Fi enabled Gree air conditioners.

Gree devices (and the many rebranded units built on the same Wi-Fi module) listen on UDP port 7000.
A controller broadcasts a scan request, binds to each device that answers to obtain a device-specific
AES key, and then exchanges encrypted JSON messages with it to read its status and send commands.

The protocol is not publicly documented by Gree, but it has been reverse-engineered well enough
to discover, monitor and control devices without the vendor cloud.

"""

from .version import __version__

from .internal_types import Jsonable, JsonableDict, HostAndPort, FieldValue

from .exceptions import (
    GreeError,
    GreeDecodeError,
    GreeTransportError,
    GreeProtocolRejection,
    GreeDeviceUnavailable,
  )

from .config import GreeConfig
from .crypto import GreeCipher
from .gree_message import GreeMessage
from .gree_socket import GreeSocket, GreeSocketBinding, GreeMessageSubscriber
from .commands import (
    GreeCommand,
    GREE_COMMANDS,
    GREE_COMMANDS_BY_CODE,
    ALL_FIELD_CODES,
    get_command,
    fahrenheit_to_wire,
    wire_to_fahrenheit,
    sensor_to_celsius,
  )
from .scanner import GreeDeviceInfo, scan, parse_dev_response
from .device import GreeDevice, GreeDeviceState
from .client import GreeClient, GreeDiscoveryRequest
from .constants import GREE_PORT, GREE_BROADCAST_ADDRESS, GREE_GENERIC_KEY

__all__ = [
    '__version__',
    'Jsonable', 'JsonableDict', 'HostAndPort', 'FieldValue',
    'GreeError', 'GreeDecodeError', 'GreeTransportError', 'GreeProtocolRejection', 'GreeDeviceUnavailable',
    'GreeConfig',
    'GreeCipher',
    'GreeMessage',
    'GreeSocket', 'GreeSocketBinding', 'GreeMessageSubscriber',
    'GreeCommand', 'GREE_COMMANDS', 'GREE_COMMANDS_BY_CODE', 'ALL_FIELD_CODES', 'get_command',
    'fahrenheit_to_wire', 'wire_to_fahrenheit', 'sensor_to_celsius',
    'GreeDeviceInfo', 'scan', 'parse_dev_response',
    'GreeDevice', 'GreeDeviceState',
    'GreeClient', 'GreeDiscoveryRequest',
    'GREE_PORT', 'GREE_BROADCAST_ADDRESS', 'GREE_GENERIC_KEY',
]
