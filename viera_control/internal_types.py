# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from __future__ import annotations

from typing import (
    Dict, List, Optional, Union, Any, TypeVar, Tuple, overload,
    Callable, Awaitable, Iterable, Iterator, AsyncIterator, AsyncIterable, AsyncGenerator, NamedTuple,
    Mapping, MutableMapping, Set, Sequence, Coroutine,
    AsyncContextManager, ContextManager, cast,
  )

from typing_extensions import Self, TypeAlias

from types import TracebackType

HostAndPort = Tuple[str, int]
"""A tuple of (host: str, port: int)"""

JsonableDict = Dict[str, 'Jsonable']
"""A type hint for a dict that can be serialized to JSON"""

JsonableList = List['Jsonable']
"""A type hint for a list that can be serialized to JSON"""

Jsonable = Union[JsonableDict, JsonableList, str, float, int, bool, None]
"""A type hint for a value that can be serialized to JSON"""
