"""MIDI learning: binding MIDI controllers to OSC parameters.

The work is split in two halves.  :class:`MidiMapperNRT` runs outside the
realtime context; it keeps track of which address is bound to which
controller and builds new :class:`MidiMapperStorage` tables.
:class:`MidiMapperRT` runs in the realtime context; it turns incoming
controller events into OSC messages using the current storage.  The two
halves talk to each other only through :class:`~osctools.ports.Message`
objects.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple, Optional

from osctools.argval import ArgVal, _to_f32
from osctools.automations import _atof
from osctools.ports import Message, Port, PortMap

__all__ = [
    "MidiBijection",
    "MidiMapperStorage",
    "MidiMapperNRT",
    "MidiMapperRT",
]

Write = Callable[[Message], None]
ValueCallback = Callable[[int, Write], None]

_FULL_SCALE = 1 << 14
BIND_PATH = "/midi-learn/midi-bind"
ADD_WATCH_PATH = "/midi-learn/midi-add-watch"
USE_CC_PATH = "/midi-use-CC"
VIRTUAL_CC_PATH = "/virtual_midi_cc"


@dataclass(frozen=True)
class MidiBijection:
    """Linear map between 14 bit MIDI values and a parameter range."""

    mode: int = 0
    min: float = 0.0
    max: float = 1.0

    def to_midi(self, x: float) -> int:
        """Map a parameter value onto a 14 bit MIDI value."""
        if self.mode != 0:
            return 0
        return math.trunc((x - self.min) / (self.max - self.min) * _FULL_SCALE)

    def from_midi(self, x: int) -> float:
        """Map a 14 bit MIDI value onto the parameter range."""
        if self.mode != 0:
            return 0.0
        return x / float(_FULL_SCALE) * (self.max - self.min) + self.min


class _Binding(NamedTuple):
    """Where an address is bound: callback index, coarse and fine IDs."""

    index: int
    coarse: int
    fine: int
    bijection: MidiBijection


class MidiMapperStorage:
    """A table from controller IDs to value slots and their callbacks.

    ``mapping`` holds ``(id, coarse, index)`` entries; a coarse entry sets
    the upper 7 bits of ``values[index]``, a fine entry the lower 7 bits.
    """

    def __init__(self) -> None:
        self.values: list[int] = []
        self.mapping: list[tuple[int, bool, int]] = []
        self.callbacks: list[ValueCallback] = []

    def handle_cc(self, id_: int, val: int, write: Write) -> bool:
        """Apply a controller value; True if the ID is mapped."""
        for mapped_id, coarse, ind in self.mapping:
            if mapped_id != id_:
                continue
            if coarse:
                self.values[ind] = (val << 7) | (self.values[ind] & 0x7F)
            else:
                self.values[ind] = val | (self.values[ind] & 0x3F80)
            self.callbacks[ind](self.values[ind], write)
            return True
        return False

    def clone_values(self, storage: MidiMapperStorage) -> None:
        """Take over the current values of another storage, ID by ID."""
        self.values = [0] * len(self.values)
        for mapped_id, coarse_dest, ind_dest in self.mapping:
            for src_id, coarse_src, ind_src in storage.mapping:
                if mapped_id != src_id:
                    continue
                source = storage.values[ind_src]
                val = source >> 7 if coarse_src else source & 0x7F
                current = self.values[ind_dest]
                if coarse_dest:
                    self.values[ind_dest] = (val << 7) | (current & 0x7F)
                else:
                    self.values[ind_dest] = val | (current & 0x3F80)

    def clone(self) -> MidiMapperStorage:
        """A copy whose tables can be changed independently."""
        copy = MidiMapperStorage()
        copy.values = list(self.values)
        copy.mapping = list(self.mapping)
        copy.callbacks = list(self.callbacks)
        return copy


def _value_writer(bi: MidiBijection, addr: str, type_: str) -> ValueCallback:
    def write_value(x: int, write: Write) -> None:
        out = bi.from_midi(x)
        if type_ == "f":
            arg = ArgVal("f", _to_f32(out))
        else:
            arg = ArgVal("i", int(out))
        write(Message(addr, (arg,)))

    return write_value


def _raw_writer(addr: str) -> ValueCallback:
    def write_value(x: int, write: Write) -> None:
        write(Message(addr, (ArgVal("i", 0x7F & (x >> 7)),)))

    return write_value


def _kill_map(id_: int, storage: MidiMapperStorage) -> None:
    storage.mapping = [entry for entry in storage.mapping if entry[0] != id_]


def _bijection_for(port: Port) -> MidiBijection:
    meta = port.meta()
    return MidiBijection(0, _atof(meta.get("min")), _atof(meta.get("max")))


class MidiMapperNRT:
    """Non-realtime half of MIDI learning.

    ``rt_cb`` receives the messages meant for the realtime half.
    """

    def __init__(
        self,
        rt_cb: Optional[Write] = None,
        base_ports: Optional[PortMap] = None,
    ) -> None:
        self.storage: Optional[MidiMapperStorage] = None
        self.base_ports = base_ports
        self.rt_cb: Optional[Write] = rt_cb
        self.learn_queue: deque[tuple[str, bool]] = deque()
        self.inv_map: dict[str, _Binding] = {}

    def _send(self, msg: Message) -> None:
        if self.rt_cb is not None:
            self.rt_cb(msg)

    def _send_bind(self) -> None:
        # the storage travels by reference inside the blob argument
        self._send(Message(BIND_PATH, (ArgVal("b", self.storage),)))

    def _port(self, addr: str) -> Port:
        if self.base_ports is None:
            raise RuntimeError("no base ports have been set")
        port = self.base_ports.apropos(addr)
        if port is None:
            raise KeyError(f"port '{addr}' does not exist")
        return port

    def map(self, addr: str, coarse: bool = True) -> None:
        """Queue ``addr`` to be bound to the next unused controller."""
        if (addr, coarse) in self.learn_queue:
            return
        self.unmap(addr, coarse)
        self.learn_queue.append((addr, coarse))
        self._send(Message(ADD_WATCH_PATH))

    def generate_new_bijection(
        self, port: Port, addr: str
    ) -> Optional[MidiMapperStorage]:
        """A new storage with a value slot for ``addr``; None without bounds."""
        meta = port.meta()
        if "min" not in meta or "max" not in meta:
            return None
        bi = _bijection_for(port)
        type_ = "i" if ":i" in port.name else "f"
        if bi.min == 0 and bi.max == 127 and type_ == "i":
            callback = _raw_writer(addr)
        else:
            callback = _value_writer(bi, addr, type_)

        nstorage = MidiMapperStorage()
        if self.storage is not None:
            nstorage.values = list(self.storage.values) + [0]
            nstorage.mapping = list(self.storage.mapping)
            nstorage.callbacks = list(self.storage.callbacks) + [callback]
        else:
            nstorage.values = [0]
            nstorage.callbacks = [callback]
        self.inv_map[addr] = _Binding(len(nstorage.callbacks) - 1, -1, -1, bi)
        return nstorage

    def add_new_mapper(self, id_: int, port: Port, addr: str) -> None:
        """Bind ``addr`` to controller ``id_`` as its coarse part."""
        bi = _bijection_for(port)
        type_ = "i" if ":i" in port.name else "f"
        callback = _value_writer(bi, addr, type_)
        nstorage = MidiMapperStorage()
        if self.storage is not None:
            nstorage.values = list(self.storage.values) + [0]
            nstorage.mapping = list(self.storage.mapping) + [
                (id_, True, len(self.storage.callbacks))
            ]
            nstorage.callbacks = list(self.storage.callbacks) + [callback]
        else:
            nstorage.values = [0]
            nstorage.mapping = [(id_, True, 0)]
            nstorage.callbacks = [callback]
        self.storage = nstorage
        self.inv_map[addr] = _Binding(len(nstorage.callbacks) - 1, id_, -1, bi)
        self._send_bind()

    def add_fine_mapper(self, id_: int, port: Port, addr: str) -> None:
        """Bind controller ``id_`` as the fine part of a bound ``addr``."""
        binding = self.inv_map[addr]
        if self.storage is None:
            raise RuntimeError("no coarse mapping exists")
        mapped = binding.index
        self.inv_map[addr] = binding._replace(fine=id_)
        nstorage = MidiMapperStorage()
        nstorage.values = list(self.storage.values)
        nstorage.mapping = list(self.storage.mapping) + [(id_, False, mapped)]
        nstorage.callbacks = list(self.storage.callbacks) + [
            self.storage.callbacks[mapped]
        ]
        self.storage = nstorage

    def use_free_id(self, id_: int) -> None:
        """Bind the oldest queued address to controller ``id_``."""
        if not self.learn_queue:
            return
        addr, coarse = self.learn_queue.popleft()
        port = self._port(addr)

        if addr not in self.inv_map:
            nstorage = self.generate_new_bijection(port, addr)
            if nstorage is None:
                raise ValueError(f"cannot learn '{addr}': it has no min/max bounds")
        else:
            if self.storage is None:
                raise RuntimeError("no storage to extend")
            nstorage = self.storage.clone()

        binding = self.inv_map[addr]
        nstorage.mapping.append((id_, coarse, binding.index))

        if coarse:
            if binding.coarse != -1:
                _kill_map(binding.coarse, nstorage)
            self.inv_map[addr] = binding._replace(coarse=id_)
        else:
            if binding.fine != -1:
                _kill_map(binding.coarse, nstorage)
            self.inv_map[addr] = binding._replace(fine=id_)
        self.storage = nstorage
        self._send_bind()

    def unmap(self, addr: str, coarse: bool = True) -> None:
        """Remove the coarse or fine binding of ``addr``."""
        binding = self.inv_map.get(addr)
        if binding is None:
            return
        if coarse:
            kill_id = binding.coarse
            binding = binding._replace(coarse=-1)
        else:
            kill_id = binding.fine
            binding = binding._replace(fine=-1)
        if binding.coarse == -1 and binding.fine == -1:
            del self.inv_map[addr]
        else:
            self.inv_map[addr] = binding

        if kill_id == -1:
            return
        if self.storage is None:
            raise RuntimeError("no storage to unmap from")
        nstorage = self.storage.clone()
        _kill_map(kill_id, nstorage)
        self.storage = nstorage
        self._send_bind()

    def clear(self) -> None:
        """Drop every binding and pending learn request."""
        self.storage = MidiMapperStorage()
        self.learn_queue.clear()
        self.inv_map.clear()
        self._send_bind()

    def get_midi_mapping_strings(self) -> dict[str, str]:
        """Human readable bindings per address; pending ones get letters."""
        result = {addr: self.get_mapped_string(addr) for addr in self.inv_map}
        letter = ord("A")
        for addr, coarse in self.learn_queue:
            if coarse:
                result[addr] = chr(letter)
            else:
                result[addr] = result.get(addr, "") + ":" + chr(letter)
            letter += 1
        return dict(sorted(result.items()))

    def get_mapped_string(self, addr: str) -> str:
        """``"coarse:fine"`` for ``addr``, using queue positions if pending."""
        out = []
        binding = self.inv_map.get(addr)
        queue = list(self.learn_queue)
        if binding is not None:
            if binding.coarse != -1:
                out.append(str(binding.coarse))
        elif (addr, True) in queue:
            out.append(str(queue.index((addr, True))))
        if binding is not None:
            if binding.fine != -1:
                out.append(f":{binding.fine}")
        elif (addr, False) in queue:
            out.append(str(queue.index((addr, False))))
        return "".join(out)

    def get_bijection(self, addr: str) -> MidiBijection:
        return self.inv_map[addr].bijection

    def snoop(self, msg: Message) -> None:
        """Mirror a parameter change back onto its bound controllers."""
        binding = self.inv_map.get(msg.path)
        if binding is None:
            return
        types = msg.types
        if types in ("f", "i"):
            value = float(msg.args[0].value)
        elif types == "T":
            value = 1.0
        elif types == "F":
            value = 0.0
        else:
            return
        new_midi = binding.bijection.to_midi(value)
        if binding.coarse != -1:
            self._apply_midi(new_midi >> 7, binding.coarse)
        if binding.fine != -1:
            self._apply_midi(new_midi & 0x7F, binding.fine)

    def _apply_midi(self, val: int, id_: int) -> None:
        args = (ArgVal("i", 0), ArgVal("i", val), ArgVal("i", id_))
        self._send(Message(VIRTUAL_CC_PATH, args))

    def set_bounds(self, addr: str, low: float, high: float) -> None:
        """Change the range a bound address is mapped onto."""
        binding = self.inv_map.get(addr)
        if binding is None:
            return
        bi = MidiBijection(0, low, high)
        self.inv_map[addr] = binding._replace(bijection=bi)
        if self.storage is None:
            raise RuntimeError("no storage to update")
        nstorage = self.storage.clone()
        nstorage.callbacks[binding.index] = _value_writer(bi, addr, "f")
        self.storage = nstorage
        self._send_bind()

    def get_bounds(self, addr: str) -> tuple[float, float, float, float]:
        """Port bounds and mapped bounds; the latter are -1 when unbound."""
        meta = self._port(addr).meta()
        min_val = _atof(meta.get("min"))
        max_val = _atof(meta.get("max"))
        binding = self.inv_map.get(addr)
        if binding is not None:
            return (min_val, max_val, binding.bijection.min, binding.bijection.max)
        return (min_val, max_val, -1.0, -1.0)

    def has(self, addr: str) -> bool:
        return addr in self.inv_map

    def has_pending(self, addr: str) -> bool:
        return any(queued == addr for queued, _ in self.learn_queue)

    def has_coarse(self, addr: str) -> bool:
        return self.get_coarse(addr) != -1

    def has_fine(self, addr: str) -> bool:
        return self.get_fine(addr) != -1

    def has_coarse_pending(self, addr: str) -> bool:
        return (addr, True) in self.learn_queue

    def has_fine_pending(self, addr: str) -> bool:
        return (addr, False) in self.learn_queue

    def get_coarse(self, addr: str) -> int:
        binding = self.inv_map.get(addr)
        return -1 if binding is None else binding.coarse

    def get_fine(self, addr: str) -> int:
        binding = self.inv_map.get(addr)
        return -1 if binding is None else binding.fine


class MidiMapperRT:
    """Realtime half of MIDI learning."""

    def __init__(self) -> None:
        self.storage: Optional[MidiMapperStorage] = None
        self.watch_size = 0
        self.pending: deque[int] = deque()
        self.backend: Optional[Write] = None
        self.frontend: Optional[Write] = None

    def set_backend_cb(self, cb: Write) -> None:
        """Where mapped parameter messages go."""
        self.backend = cb

    def set_frontend_cb(self, cb: Write) -> None:
        """Where requests to learn an unused controller go."""
        self.frontend = cb

    def _to_backend(self, msg: Message) -> None:
        if self.backend is not None:
            self.backend(msg)

    def handle_cc(self, par: int, val: int, chan: int = 1, is_nrpn: bool = False) -> None:
        """Handle a controller event on a 1-based channel."""
        chan = max(chan, 1)
        id_ = (int(bool(is_nrpn)) << 18) + (((chan - 1) & 0x0F) << 14) + par
        handled = self.storage is not None and self.storage.handle_cc(
            id_, val, self._to_backend
        )
        if not handled and id_ not in self.pending and self.watch_size:
            self.watch_size -= 1
            self.pending.append(id_)
            if self.frontend is not None:
                self.frontend(Message(USE_CC_PATH, (ArgVal("i", id_),)))

    def add_watch(self) -> None:
        self.watch_size += 1

    def rem_watch(self) -> None:
        if self.watch_size:
            self.watch_size -= 1

    def bind(self, storage: MidiMapperStorage) -> None:
        """Switch to a new storage, keeping the current controller values."""
        if self.pending:
            self.pending.popleft()
        if self.storage is not None:
            storage.clone_values(self.storage)
        self.storage = storage

    def dispatch(self, msg: Message) -> bool:
        """Handle a message from the non-realtime half; True if understood."""
        name = msg.path.rstrip("/").rsplit("/", 1)[-1]
        if name == "midi-add-watch":
            self.add_watch()
        elif name == "midi-remove-watch":
            self.rem_watch()
        elif name == "midi-bind" and msg.types == "b":
            self.bind(msg.args[0].value)
        else:
            return False
        return True