#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
The vocabulary of device status fields understood by Gree air conditioners.

Each GreeCommand maps a logical capability name (e.g., "power") to the field code used
on the wire (e.g., "Pow") and, for categorical fields, to the named values the field
can take. Field codes and values are part of the device firmware protocol and must not
be renamed.
"""

from __future__ import annotations

import math
from types import MappingProxyType

from .internal_types import *
from .exceptions import GreeError

TEMPERATURE_SENSOR_OFFSET = 40
"""The TemSen field reports the indoor temperature in Celsius plus this offset."""

class GreeCommand:
    """A single device status field."""

    name: str
    """The logical capability name, e.g. "power"."""

    code: str
    """The field code used on the wire, e.g. "Pow"."""

    values: Optional[Mapping[str, int]] = None
    """The named wire values of a categorical field, or None for a numeric field."""

    def __init__(self, name: str, code: str, values: Optional[Mapping[str, int]]=None):
        self.name = name
        self.code = code
        if not values is None:
            self.values = MappingProxyType(dict(values))

    @property
    def is_categorical(self) -> bool:
        return not self.values is None

    def value_of(self, value_name: str) -> int:
        """Returns the wire value for a named value, e.g. power.value_of("on") == 1."""
        if self.values is None:
            raise GreeError(f"Field {self.code} does not have named values")
        try:
            return self.values[value_name]
        except KeyError:
            raise GreeError(f"Unknown value name {value_name!r} for field {self.code}; expected one of {list(self.values)}") from None

    def name_of(self, value: FieldValue) -> Optional[str]:
        """Returns the name of a wire value, or None if the value is not one of the named values."""
        if self.values is None:
            return None
        for value_name, v in self.values.items():
            if v == value:
                return value_name
        return None

    def __str__(self) -> str:
        return f"GreeCommand({self.name}: {self.code})"

    def __repr__(self) -> str:
        return str(self)

OFF_ON: Mapping[str, int] = { 'off': 0, 'on': 1 }

_COMMAND_LIST: List[GreeCommand] = [
    GreeCommand('power', 'Pow', OFF_ON),
    GreeCommand('mode', 'Mod', {
        'auto': 0,
        'cool': 1,
        'dry':  2,
        'fan':  3,
        'heat': 4,
      }),
    GreeCommand('targetTemperature', 'SetTem'),
    GreeCommand('temperatureOffset', 'TemRec'),
    GreeCommand('temperatureSensor', 'TemSen'),
    GreeCommand('units', 'TemUn', {
        'celsius':    0,
        'fahrenheit': 1,
      }),
    GreeCommand('speed', 'WdSpd', {
        'auto':       0,
        'low':        1,
        'mediumLow':  2,
        'medium':     3,
        'mediumHigh': 4,
        'high':       5,
      }),
    GreeCommand('swingLeftRight', 'SwingLfRig', {
        'default':     0,
        'full':        1,
        'left':        2,
        'centerLeft':  3,
        'center':      4,
        'centerRight': 5,
        'right':       6,
      }),
    GreeCommand('swingUpDown', 'SwUpDn', {
        'default':       0,
        'full':          1,
        'fixedHighest':  2,
        'fixedHigher':   3,
        'fixedMiddle':   4,
        'fixedLower':    5,
        'fixedLowest':   6,
        'swingLowest':   7,
        'swingLower':    8,
        'swingMiddle':   9,
        'swingHigher':  10,
        'swingHighest': 11,
      }),
    GreeCommand('xFan', 'Blo', OFF_ON),
    GreeCommand('health', 'Health', OFF_ON),
    GreeCommand('light', 'Lig', OFF_ON),
    GreeCommand('sleep', 'SwhSlp', OFF_ON),
    GreeCommand('quiet', 'Quiet', OFF_ON),
    GreeCommand('turbo', 'Tur', OFF_ON),
  ]

GREE_COMMANDS: Mapping[str, GreeCommand] = MappingProxyType({ c.name: c for c in _COMMAND_LIST })
"""All known fields, indexed by logical capability name, in wire order."""

GREE_COMMANDS_BY_CODE: Mapping[str, GreeCommand] = MappingProxyType({ c.code: c for c in _COMMAND_LIST })
"""All known fields, indexed by wire field code."""

ALL_FIELD_CODES: Tuple[str, ...] = tuple(c.code for c in _COMMAND_LIST)
"""The field codes requested by every status request."""

def get_command(name_or_code: Union[str, GreeCommand]) -> GreeCommand:
    """Looks up a GreeCommand by logical name ("power") or wire field code ("Pow")."""
    if isinstance(name_or_code, GreeCommand):
        return name_or_code
    result = GREE_COMMANDS.get(name_or_code)
    if result is None:
        result = GREE_COMMANDS_BY_CODE.get(name_or_code)
    if result is None:
        raise GreeError(f"Unknown Gree field: {name_or_code!r}")
    return result

def is_field_code(code: str) -> bool:
    return code in GREE_COMMANDS_BY_CODE

def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)

def fahrenheit_to_wire(fahrenheit: float) -> Tuple[int, int]:
    """Encodes a Fahrenheit target temperature as the (SetTem, TemRec) pair sent to the device.

    SetTem is the rounded Celsius temperature; TemRec is 0 if the rounding went up and 1
    otherwise, which lets the device reproduce the exact Fahrenheit value.
    """
    celsius = (fahrenheit - 32) * 5 / 9
    set_tem = _round_half_up(celsius)
    tem_rec = 0 if celsius - set_tem < 0 else 1
    return (set_tem, tem_rec)

def wire_to_fahrenheit(set_tem: int, tem_rec: int) -> int:
    """Decodes a (SetTem, TemRec) pair into the Fahrenheit temperature shown on the device."""
    fahrenheit = set_tem * 9 / 5 + 32
    if fahrenheit.is_integer():
        return int(fahrenheit)
    return math.floor(fahrenheit) + tem_rec

def sensor_to_celsius(tem_sen: FieldValue) -> FieldValue:
    """Converts a raw TemSen reading into degrees Celsius."""
    return tem_sen - TEMPERATURE_SENSOR_OFFSET
