#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Abstraction of the outer JSON envelope of a Gree datagram.

Two shapes exist on the wire:

  {"t": "scan"}
      The unencrypted discovery request, broadcast by clients.

  {"t": "pack", "i": <0|1>, "uid": 0, "cid": <origin>, "tcid": <destination>, "pack": <encrypted>}
      Everything else. "pack" carries a GreeCipher-encrypted JSON object whose own "t" field
      identifies the payload ("dev", "bind"/"bindok", "status"/"dat", "cmd"/"res").
"""

from __future__ import annotations

import json

from .internal_types import *
from .exceptions import GreeDecodeError

class GreeMessage:
    """Wrapper for a raw Gree datagram.

    This class provides parsing and formatting of the JSON envelope and typed
    accessors for its well-known fields.
    """

    _raw_data: bytes
    """The raw UDP datagram contents"""

    _json_data: JsonableDict
    """The decoded JSON object"""

    def __init__(
            self,
            json_data: Optional[Mapping[str, Jsonable]]=None,
            raw_data: Optional[bytes]=None,
          ):
        if raw_data is None:
            if json_data is None:
                raise ValueError("Either json_data or raw_data must be provided")
            self.json_data = json_data
        else:
            if not json_data is None:
                raise ValueError("If raw_data is provided, json_data must be None")
            self.raw_data = raw_data
            # json_data is set by the setter for raw_data

    @classmethod
    def make_scan(cls) -> GreeMessage:
        """Creates a discovery request."""
        return cls({'t': 'scan'})

    @classmethod
    def make_pack(cls, index: int, cid: str, tcid: str, pack: str) -> GreeMessage:
        """Creates a pack message wrapping an already encrypted payload."""
        return cls({
            't': 'pack',
            'i': index,
            'uid': 0,
            'cid': cid,
            'tcid': tcid,
            'pack': pack,
          })

    def __str__(self) -> str:
        return f"GreeMessage({json.dumps(self._json_data)})"

    def __repr__(self) -> str:
        return str(self)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, GreeMessage):
            return False
        return self._json_data == other._json_data

    @property
    def raw_data(self) -> bytes:
        """The raw UDP datagram contents"""
        return self._raw_data

    @raw_data.setter
    def raw_data(self, value: bytes) -> None:
        """Set the raw UDP datagram contents, and decode the JSON object.

        Raises GreeDecodeError if the data is not a UTF-8 encoded JSON object."""
        assert isinstance(value, bytes)
        try:
            json_data = json.loads(value.decode('utf-8'))
        except (UnicodeDecodeError, ValueError) as e:
            raise GreeDecodeError(f"Datagram is not valid JSON: {e}") from e
        if not isinstance(json_data, dict):
            raise GreeDecodeError(f"Datagram is not a JSON object: {json_data!r}")
        self._raw_data = value
        self._json_data = json_data

    @property
    def json_data(self) -> JsonableDict:
        """The decoded JSON object. Do not modify; assign a new object instead."""
        return self._json_data

    @json_data.setter
    def json_data(self, value: Mapping[str, Jsonable]) -> None:
        assert isinstance(value, Mapping)
        self._json_data = dict(value)
        self._raw_data = json.dumps(self._json_data, separators=(',', ':')).encode('utf-8')

    def get(self, name: str, default: Jsonable=None) -> Jsonable:
        return self._json_data.get(name, default)

    @property
    def t(self) -> Optional[str]:
        """The "t" (message type) field, or None if missing or not a string."""
        result = self._json_data.get('t')
        if not isinstance(result, str):
            return None
        return result

    @property
    def i(self) -> Optional[int]:
        """The "i" field; 1 for messages encrypted with the generic key, 0 otherwise."""
        result = self._json_data.get('i')
        if not isinstance(result, int) or isinstance(result, bool):
            return None
        return result

    @property
    def cid(self) -> Optional[str]:
        """The "cid" (origin id) field. For device responses this is the device MAC."""
        result = self._json_data.get('cid')
        if not isinstance(result, str):
            return None
        return result

    @property
    def tcid(self) -> Optional[str]:
        """The "tcid" (target id) field."""
        result = self._json_data.get('tcid')
        if not isinstance(result, str):
            return None
        return result

    @property
    def pack(self) -> Optional[str]:
        """The encrypted inner payload, or None if this is not a pack message."""
        result = self._json_data.get('pack')
        if not isinstance(result, str):
            return None
        return result

    @property
    def is_pack(self) -> bool:
        return self.t == 'pack' and not self.pack is None

    @property
    def is_dev_response(self) -> bool:
        """True if this looks like a response to a scan request: a pack message
           with i == 1 and an empty tcid, encrypted with the generic key."""
        return self.is_pack and self.i == 1 and self.tcid == ''
