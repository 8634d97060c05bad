# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants used by this package"""

GREE_PORT = 7000
"""The UDP port on which Gree devices listen for scan and pack requests."""

GREE_BROADCAST_ADDRESS = "255.255.255.255"
"""The limited broadcast address, used when no interface broadcast address can be found."""

GREE_GENERIC_KEY = "a3K8Bx%2r8Y7#xDh"
"""The well-known AES key used for scan responses and bind requests, before a device key is known."""

GREE_APP_CID = "app"
"""The client id placed in the "cid" field of every request sent to a device."""

GREE_RESULT_OK = 200
"""The "r" result code of a successful response."""

DEFAULT_SCAN_INTERVAL = 1.0
"""Default time (in seconds) between scan broadcasts."""

DEFAULT_SCAN_MAX_RETRIES = 3
"""Default number of scan broadcasts sent by a client."""

DEFAULT_REFRESH_INTERVAL = 3.0
"""Default time (in seconds) between status refresh ticks of a bound device."""

STATUS_OBSERVATION_WINDOW = 5.0
"""A refresh tick only polls the device if get_status() was called within this many seconds."""

MAX_UNRESPONDED_STATUS_REQUESTS = 5
"""A device is marked unavailable when this many status requests in a row go unanswered."""
