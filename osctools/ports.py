"""OSC messages, ports with metadata, and port trees with path lookup."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Union

from osctools.argval import ArgVal

__all__ = ["Message", "Port", "PortMap"]


@dataclass(frozen=True)
class Message:
    """An OSC message: an address and its typed arguments."""

    path: str
    args: tuple[ArgVal, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def types(self) -> str:
        """The type tag string of the arguments."""
        return "".join(arg.type for arg in self.args)


Metadata = Union[str, Mapping[str, Optional[str]], None]


def _parse_metadata(text: str) -> dict[str, Optional[str]]:
    """Parse ``:key\\0=value\\0:flag\\0`` style metadata into a dict."""
    result: dict[str, Optional[str]] = {}
    key: Optional[str] = None
    for entry in text.split("\0"):
        if entry.startswith(":"):
            key = entry[1:]
            result[key] = None
        elif entry.startswith("=") and key is not None:
            result[key] = entry[1:]
            key = None
    return result


_HASH = re.compile(r"#(\d*)")


@lru_cache(maxsize=None)
def _compile(pattern: str) -> tuple[re.Pattern, tuple[Optional[int], ...]]:
    """Turn a port name pattern into a regex; ``#N`` matches a number below N."""
    parts = []
    limits = []
    pos = 0
    for found in _HASH.finditer(pattern):
        parts.append(re.escape(pattern[pos:found.start()]))
        parts.append(r"(\d+)")
        limits.append(int(found.group(1)) if found.group(1) else None)
        pos = found.end()
    parts.append(re.escape(pattern[pos:]))
    return re.compile("".join(parts)), tuple(limits)


def _match(pattern: str, path: str, full: bool) -> Optional[int]:
    """Return the length of ``path`` matched by ``pattern``, or None."""
    regex, limits = _compile(pattern)
    found = regex.fullmatch(path) if full else regex.match(path)
    if found is None:
        return None
    for number, limit in zip(found.groups(), limits):
        if limit is not None and int(number) >= limit:
            return None
    return found.end()


@dataclass(eq=False)
class Port:
    """A named endpoint, optionally holding a subtree of further ports.

    The name is a pattern followed by optional ``:types`` specifiers, e.g.
    ``"freq:f"`` or ``"voice#8/"``.
    """

    name: str
    metadata: Metadata = None
    ports: Optional[PortMap] = None
    callback: Optional[Callable[[Message], None]] = field(default=None, repr=False)

    @property
    def base_name(self) -> str:
        """The name without its argument type specifiers."""
        return self.name.split(":", 1)[0]

    def meta(self) -> dict[str, Optional[str]]:
        """The metadata as a mapping of titles to values (None for flags)."""
        if self.metadata is None:
            return {}
        if isinstance(self.metadata, str):
            return _parse_metadata(self.metadata)
        return dict(self.metadata)

    def arg_types(self) -> tuple[str, ...]:
        """The accepted argument type strings, one per ``:`` specifier."""
        specs = self.name.split(":")[1:]
        if specs and specs[-1] == "":
            specs.pop()
        return tuple(specs)


class PortMap:
    """An ordered collection of ports forming one level of a port tree."""

    def __init__(self, ports: Iterable[Port] = ()) -> None:
        self.ports: tuple[Port, ...] = tuple(ports)

    def __iter__(self) -> Iterator[Port]:
        return iter(self.ports)

    def __len__(self) -> int:
        return len(self.ports)

    def __getitem__(self, key: Union[int, str]) -> Port:
        if isinstance(key, int):
            return self.ports[key]
        for port in self.ports:
            if port.base_name == key:
                return port
        raise KeyError(key)

    def apropos(self, path: str) -> Optional[Port]:
        """Find the port that handles ``path``, descending into subtrees."""
        if path.startswith("/"):
            path = path[1:]
        for port in self.ports:
            base = port.base_name
            if "/" not in base:
                continue
            end = _match(base, path, full=False)
            if end is None:
                continue
            rest = path[end:]
            if not rest:
                return port
            if port.ports is None:
                return None
            return port.ports.apropos(rest)
        if not path:
            return None
        for port in self.ports:
            base = port.base_name
            if "/" not in base and _match(base, path, full=True) is not None:
                return port
        return None