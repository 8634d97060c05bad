#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Configuration support.

A GreeConfig can be built in code, or loaded from a JSON object such as:

    {
      "port": 7000,
      "scan_address": "192.168.1.255",
      "scan_interval": 1.0,
      "scan_max_retries": 3,
      "refresh_interval": 3.0
    }

The camelCase keys used by the Homebridge plugin configuration ("scanPort", "scanAddress",
"scanInterval", "scanMaxRetries", "refreshInterval") are accepted as well; the interval
values under those keys are in milliseconds.
"""

from __future__ import annotations

import os
import json

from .internal_types import *
from .exceptions import GreeError
from .constants import (
    GREE_PORT,
    DEFAULT_SCAN_INTERVAL,
    DEFAULT_SCAN_MAX_RETRIES,
    DEFAULT_REFRESH_INTERVAL,
  )
from .util import get_default_broadcast_address

# camelCase key -> (snake_case key, scale factor applied to the value)
_CAMEL_CASE_KEYS: Dict[str, Tuple[str, Optional[float]]] = {
    'port':            ('port', None),
    'scanPort':        ('scan_port', None),
    'scanAddress':     ('scan_address', None),
    'scanInterval':    ('scan_interval', 0.001),
    'scanMaxRetries':  ('scan_max_retries', None),
    'refreshInterval': ('refresh_interval', 0.001),
}

class GreeConfig:
    port: int = GREE_PORT
    """The local UDP port to bind to. Devices are also addressed on this port."""

    scan_port: int = GREE_PORT
    """The UDP port scan requests are broadcast to."""

    scan_address: Optional[str] = None
    """The broadcast address for scan requests. If None, the broadcast address of the default
       network interface is used."""

    scan_interval: float = DEFAULT_SCAN_INTERVAL
    """Time (in seconds) between scan broadcasts."""

    scan_max_retries: int = DEFAULT_SCAN_MAX_RETRIES
    """Number of scan broadcasts to send."""

    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    """Time (in seconds) between status refresh ticks of each bound device."""

    config_file: Optional[str] = None
    """The fully qualified pathname of the configuration file from which this GreeConfig
       originated, or None if not from a file"""

    def __init__(
            self,
            port: int=GREE_PORT,
            scan_port: int=GREE_PORT,
            scan_address: Optional[str]=None,
            scan_interval: float=DEFAULT_SCAN_INTERVAL,
            scan_max_retries: int=DEFAULT_SCAN_MAX_RETRIES,
            refresh_interval: float=DEFAULT_REFRESH_INTERVAL,
          ) -> None:
        self.port = port
        self.scan_port = scan_port
        self.scan_address = scan_address
        self.scan_interval = scan_interval
        self.scan_max_retries = scan_max_retries
        self.refresh_interval = refresh_interval
        self.validate()

    def validate(self) -> None:
        for name in ('port', 'scan_port'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 65535:
                raise GreeError(f"GreeConfig: {name} must be a port number, got {value!r}")
        if not self.scan_address is None and not isinstance(self.scan_address, str):
            raise GreeError(f"GreeConfig: scan_address must be a string, got {self.scan_address!r}")
        for name in ('scan_interval', 'refresh_interval'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
                raise GreeError(f"GreeConfig: {name} must be a positive number of seconds, got {value!r}")
        if not isinstance(self.scan_max_retries, int) or isinstance(self.scan_max_retries, bool) or self.scan_max_retries < 0:
            raise GreeError(f"GreeConfig: scan_max_retries must be a non-negative integer, got {self.scan_max_retries!r}")

    def get_scan_address(self) -> str:
        """The configured scan address, or the default interface broadcast address."""
        if self.scan_address is None:
            return get_default_broadcast_address()
        return self.scan_address

    @classmethod
    def from_jsonable(cls, data: Mapping[str, Jsonable]) -> GreeConfig:
        if not isinstance(data, Mapping):
            raise GreeError(f"GreeConfig: expected a JSON object, got {data!r}")
        kwargs: Dict[str, Any] = {}
        snake_case_keys = set(v[0] for v in _CAMEL_CASE_KEYS.values())
        for key, value in data.items():
            if key in snake_case_keys:
                kwargs[key] = value
            elif key in _CAMEL_CASE_KEYS:
                name, scale = _CAMEL_CASE_KEYS[key]
                if not scale is None and isinstance(value, (int, float)) and not isinstance(value, bool):
                    value = value * scale
                kwargs[name] = value
            elif key in ('debug', 'platform', 'name'):
                # Homebridge bookkeeping keys that have no meaning here
                pass
            else:
                raise GreeError(f"GreeConfig: unknown configuration key {key!r}")
        return cls(**kwargs)

    @classmethod
    def load_file(cls, pathname: str) -> GreeConfig:
        pathname = os.path.abspath(os.path.expanduser(pathname))
        try:
            with open(pathname, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise GreeError(f"GreeConfig: unable to load {pathname}: {e}") from e
        if isinstance(data, dict) and isinstance(data.get('options'), dict):
            # a Homebridge platform block keeps the settings under "options"
            data = data['options']
        result = cls.from_jsonable(data)
        result.config_file = pathname
        return result

    def to_jsonable(self) -> JsonableDict:
        return {
            'port': self.port,
            'scan_port': self.scan_port,
            'scan_address': self.scan_address,
            'scan_interval': self.scan_interval,
            'scan_max_retries': self.scan_max_retries,
            'refresh_interval': self.refresh_interval,
          }

    def __str__(self) -> str:
        return f"GreeConfig({json.dumps(self.to_jsonable())})"

    def __repr__(self) -> str:
        return str(self)
