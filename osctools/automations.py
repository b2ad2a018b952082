"""Automation slots that map one control value onto many parameters."""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from osctools.argval import ArgVal
from osctools.ports import Message, Port, PortMap

__all__ = [
    "AutomationError",
    "MidiControl",
    "AutomationMapping",
    "Automation",
    "AutomationSlot",
    "AutomationMgr",
]


class AutomationError(ValueError):
    """A parameter cannot be bound to an automation."""


class MidiControl(IntEnum):
    """MIDI controller numbers used for NRPN handling."""

    DATA_ENTRY_HI = 6
    DATA_ENTRY_LO = 38
    NRPN_LO = 98
    NRPN_HI = 99


_FLOAT_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _atof(text: Optional[str]) -> float:
    """Parse the leading number of a string; 0.0 if there is none."""
    if not text:
        return 0.0
    found = _FLOAT_PREFIX.match(text)
    return float(found.group()) if found else 0.0


def _log(value: float) -> float:
    if value > 0:
        return math.log(value)
    return -math.inf if value == 0 else math.nan


def _roundf(value: float) -> int:
    """Round half away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


@dataclass
class AutomationMapping:
    """Linear mapping from a slot value in [0, 1] onto a parameter."""

    control_points: list[float]
    npoints: int
    control_scale: int = 0
    upoints: int = 0
    gain: float = 100.0
    offset: float = 0.0


@dataclass
class Automation:
    """One parameter driven by a slot."""

    map: AutomationMapping
    used: bool = False
    active: bool = False
    relative: bool = False
    param_base_value: float = 0.0
    param_path: str = ""
    param_type: str = ""
    param_min: float = 0.0
    param_max: float = 0.0
    param_step: float = 0.0


@dataclass
class AutomationSlot:
    """A control source with its bound parameters and MIDI binding."""

    name: str
    automations: list[Automation]
    used: bool = False
    active: bool = False
    learning: int = -1
    midi_cc: int = -1
    midi_nrpn: int = -1
    current_state: float = 0.0


@dataclass
class _NrpnState:
    parhi: int = -1
    parlo: int = -1
    valhi: int = -1
    vallo: int = -1

    def complete(self) -> Optional[tuple[int, int, int, int]]:
        values = (self.parhi, self.parlo, self.valhi, self.vallo)
        return None if min(values) < 0 else values


class AutomationMgr:
    """Manages automation slots, their parameter bindings and MIDI learning."""

    def __init__(
        self,
        slots: int,
        per_slot: int,
        control_points: int,
        backend: Optional[Callable[[Message], None]] = None,
    ) -> None:
        if control_points < 4:
            raise ValueError("a mapping needs at least 4 control points")
        self.nslots = slots
        self.per_slot = per_slot
        self.active_slot = 0
        self.learn_queue_len = 0
        self.ports: Optional[PortMap] = None
        self.instance: object = None
        self.damaged = False
        self.backend = backend
        self._nrpn = _NrpnState()
        self.slots = [
            AutomationSlot(
                name=f"Slot {i + 1}",
                automations=[
                    Automation(
                        map=AutomationMapping(
                            control_points=[0.0] * control_points,
                            npoints=control_points,
                        )
                    )
                    for _ in range(per_slot)
                ],
            )
            for i in range(slots)
        ]

    def _valid_slot(self, slot_id: int) -> bool:
        return 0 <= slot_id < self.nslots

    def _valid_sub(self, slot_id: int, sub: int) -> bool:
        return self._valid_slot(slot_id) and 0 <= sub < self.per_slot

    def _learnable_port(self, path: str) -> Port:
        if self.ports is None:
            raise RuntimeError("no ports have been set")
        port = self.ports.apropos(path)
        if port is None:
            raise AutomationError(f"port '{path}' does not exist")
        meta = port.meta()
        if not ("min" in meta and "max" in meta) and ":T" not in port.name:
            raise AutomationError(f"no bounds for '{path}' known")
        if "internal" in meta or "no learn" in meta:
            raise AutomationError(f"port '{path}' is unlearnable")
        return port

    @staticmethod
    def _configure(au: Automation, port: Port, path: str) -> None:
        meta = port.meta()
        au.used = True
        au.active = True
        if ":f" in port.name:
            au.param_type = "f"
        elif ":T" in port.name:
            au.param_type = "T"
        else:
            au.param_type = "i"
        if au.param_type == "T":
            au.param_min, au.param_max = 0.0, 1.0
        else:
            au.param_min = _atof(meta.get("min"))
            au.param_max = _atof(meta.get("max"))
        au.param_path = path
        scale = meta.get("scale")
        if scale and "log" in scale:
            au.map.control_scale = 1
            au.param_min = _log(au.param_min)
            au.param_max = _log(au.param_max)
        else:
            au.map.control_scale = 0

    def create_binding(self, slot: int, path: str, start_midi_learn: bool = False) -> None:
        """Bind the parameter at ``path`` to the next free entry of a slot."""
        if not self._valid_slot(slot):
            raise IndexError(f"slot {slot} does not exist")
        port = self._learnable_port(path)
        target = self.slots[slot]
        ind = next((i for i, au in enumerate(target.automations) if not au.used), None)
        if ind is None:
            return
        target.used = True
        au = target.automations[ind]
        self._configure(au, port, path)
        au.map.gain = 100.0
        au.map.offset = 0.0
        self.update_mapping(slot, ind)
        if start_midi_learn and target.learning == -1 and target.midi_cc == -1:
            self.learn_queue_len += 1
            target.learning = self.learn_queue_len
        self.damaged = True

    def update_mapping(self, slot_id: int, sub: int) -> None:
        """Recompute the mapping's control points from its gain and offset."""
        if not self._valid_sub(slot_id, sub):
            return
        au = self.slots[slot_id].automations[sub]
        mn, mx = au.param_min, au.param_max
        center = (mn + mx) * (0.5 + au.map.offset / 100.0)
        span = (mx - mn) * au.map.gain / 100.0
        au.map.upoints = 2
        points = au.map.control_points
        points[0] = 0.0
        points[1] = center - span / 2.0
        points[2] = 1.0
        points[3] = center + span / 2.0

    def set_slot(self, slot_id: int, value: float) -> None:
        """Set a slot's value and update every parameter bound to it."""
        if not self._valid_slot(slot_id):
            return
        for par in range(self.per_slot):
            self.set_slot_sub(slot_id, par, value)
        self.slots[slot_id].current_state = value

    def set_slot_sub(self, slot_id: int, par: int, value: float) -> None:
        """Send the message that sets one bound parameter for a slot value."""
        if not self._valid_sub(slot_id, par):
            return
        au = self.slots[slot_id].automations[par]
        if not au.used:
            return
        mn, mx = au.param_min, au.param_max
        a = au.map.control_points[1]
        b = au.map.control_points[3]
        v = value * (b - a) + a
        if au.param_type in ("i", "f"):
            if v > mx:
                v = mx
            elif v < mn:
                v = mn
        if au.param_type == "i":
            arg = ArgVal("i", _roundf(v))
        elif au.param_type == "f":
            if au.map.control_scale == 1:
                v = math.exp(v)
            arg = ArgVal("f", v)
        elif au.param_type in ("T", "F"):
            arg = ArgVal("T", True) if v > 0.5 else ArgVal("F", False)
        else:
            return
        if self.backend is not None:
            self.backend(Message(au.param_path, (arg,)))

    def get_slot(self, slot_id: int) -> float:
        """The current value of a slot, or 0.0 for an unknown slot."""
        if not self._valid_slot(slot_id):
            return 0.0
        return self.slots[slot_id].current_state

    def clear_slot(self, slot_id: int) -> None:
        """Reset a slot and all its bindings."""
        if not self._valid_slot(slot_id):
            return
        s = self.slots[slot_id]
        s.active = False
        s.used = False
        if s.learning:
            self.learn_queue_len -= 1
        for other in self.slots:
            if other.learning > s.learning:
                other.learning -= 1
        s.learning = -1
        s.midi_cc = -1
        s.midi_nrpn = -1
        s.current_state = 0.0
        s.name = f"Slot {slot_id + 1}"
        for sub in range(self.per_slot):
            self.clear_slot_sub(slot_id, sub)
        self.damaged = True

    def clear_slot_sub(self, slot_id: int, sub: int) -> None:
        """Remove one parameter binding of a slot."""
        if not self._valid_sub(slot_id, sub):
            return
        a = self.slots[slot_id].automations[sub]
        a.used = False
        a.active = False
        a.relative = False
        a.param_base_value = 0.0
        a.param_path = ""
        a.param_type = ""
        a.param_min = 0.0
        a.param_max = 0.0
        a.param_step = 0.0
        a.map.gain = 100.0
        a.map.offset = 0.0
        self.damaged = True

    def set_slot_sub_path(self, slot: int, ind: int, path: str) -> None:
        """Bind the parameter at ``path`` to a given entry of a slot."""
        if not self._valid_slot(slot):
            return
        port = self._learnable_port(path)
        if not 0 <= ind < self.per_slot:
            raise IndexError(f"entry {ind} does not exist")
        target = self.slots[slot]
        target.used = True
        self._configure(target.automations[ind], port, path)
        self.update_mapping(slot, ind)
        self.damaged = True

    def set_slot_sub_gain(self, slot_id: int, sub: int, gain: float) -> None:
        if self._valid_sub(slot_id, sub):
            self.slots[slot_id].automations[sub].map.gain = gain

    def get_slot_sub_gain(self, slot_id: int, sub: int) -> float:
        if not self._valid_sub(slot_id, sub):
            return 0.0
        return self.slots[slot_id].automations[sub].map.gain

    def set_slot_sub_offset(self, slot_id: int, sub: int, offset: float) -> None:
        if self._valid_sub(slot_id, sub):
            self.slots[slot_id].automations[sub].map.offset = offset

    def get_slot_sub_offset(self, slot_id: int, sub: int) -> float:
        if not self._valid_sub(slot_id, sub):
            return 0.0
        return self.slots[slot_id].automations[sub].map.offset

    def set_name(self, slot_id: int, name: str) -> None:
        if not self._valid_slot(slot_id):
            return
        self.slots[slot_id].name = name
        self.damaged = True

    def get_name(self, slot_id: int) -> str:
        if not self._valid_slot(slot_id):
            return ""
        return self.slots[slot_id].name

    def _set_parameter_number(self, type_: int, value: int) -> None:
        nrpn = self._nrpn
        if type_ == MidiControl.NRPN_HI:
            nrpn.parhi = value
            nrpn.valhi = nrpn.vallo = -1
        elif type_ == MidiControl.NRPN_LO:
            nrpn.parlo = value
            nrpn.valhi = nrpn.vallo = -1
        elif type_ == MidiControl.DATA_ENTRY_HI:
            if nrpn.parhi >= 0 and nrpn.parlo >= 0:
                nrpn.valhi = value
        elif type_ == MidiControl.DATA_ENTRY_LO:
            if nrpn.parhi >= 0 and nrpn.parlo >= 0:
                nrpn.vallo = value

    def handle_midi(self, channel: int, type_: int, val: int) -> bool:
        """Feed a MIDI controller event; True if it drove a bound slot."""
        is_nrpn = False
        par_id = 0
        if type_ in set(MidiControl):
            self._set_parameter_number(type_, val)
            nrpn = self._nrpn.complete()
            if nrpn is not None:
                parhi, parlo, valhi, vallo = nrpn
                is_nrpn = True
                par_id = (parhi << 7) + parlo
                value = (valhi << 7) + vallo
                bound = False
                for i, slot in enumerate(self.slots):
                    if slot.midi_nrpn == par_id:
                        bound = True
                        self.set_slot(i, value / 16383.0)
                if bound:
                    return True
        else:
            par_id = channel * 128 + type_
            bound = False
            for i, slot in enumerate(self.slots):
                if slot.midi_cc == par_id:
                    bound = True
                    self.set_slot(i, val / 127.0)
            if bound:
                return True

        for i, slot in enumerate(self.slots):
            if slot.learning == 1:
                slot.learning = -1
                if is_nrpn:
                    slot.midi_nrpn = par_id
                else:
                    slot.midi_cc = par_id
                for other in self.slots:
                    if other.learning > 1:
                        other.learning -= 1
                self.learn_queue_len -= 1
                self.set_slot(i, val / 127.0)
                self.damaged = True
                break
        return False

    def set_ports(self, ports: PortMap) -> None:
        self.ports = ports

    def set_instance(self, instance: object) -> None:
        self.instance = instance

    def simple_slope(self, slot_id: int, par: int, slope: float, offset: float) -> None:
        """Set a mapping directly from its slope and its value at 0.5."""
        if not self._valid_sub(slot_id, par):
            return
        mapping = self.slots[slot_id].automations[par].map
        mapping.upoints = 2
        points = mapping.control_points
        points[0] = 0.0
        points[1] = -(slope / 2) + offset
        points[2] = 1.0
        points[3] = slope / 2 + offset

    def free_slot(self) -> Optional[int]:
        """Index of the first unused slot, or None if all are in use."""
        return next((i for i, s in enumerate(self.slots) if not s.used), None)