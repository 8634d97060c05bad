#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, TypeVar, Tuple, overload,
    Callable, Iterable, Iterator, Generator, cast, TYPE_CHECKING,
    Mapping, MutableMapping, Awaitable, Set, Sequence,
    AsyncIterable, AsyncIterator, AsyncContextManager,
  )

from types import TracebackType

from typing_extensions import Self, TypeAlias

Jsonable: TypeAlias = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
"""A type that can be serialized to JSON"""

JsonableDict: TypeAlias = Dict[str, Jsonable]
"""A dictionary that can be serialized to JSON"""

HostAndPort: TypeAlias = Tuple[str, int]
"""An IP address (or hostname) and port number"""

FieldValue: TypeAlias = Union[int, float]
"""The numeric value of a single device status field"""
