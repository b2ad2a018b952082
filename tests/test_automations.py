import math

import pytest

from osctools.argval import ArgVal
from osctools.automations import AutomationError, AutomationMgr, MidiControl
from osctools.ports import Message, Port, PortMap


def make_ports():
    return PortMap(
        [
            Port("volume:f", {"min": "0", "max": "1"}),
            Port("detune:i", ":min\0=0\0:max\0=127\0"),
            Port("enabled:T"),
            Port("cutoff:f", {"min": "1", "max": "1000", "scale": "logarithmic"}),
            Port("hidden:f", {"min": "0", "max": "1", "internal": None}),
            Port("locked:f", {"min": "0", "max": "1", "no learn": None}),
            Port("loose:f", {}),
            Port("voice/", ports=PortMap([Port("pan:f", {"min": "-1", "max": "1"})])),
        ]
    )


@pytest.fixture
def setup():
    sent = []
    mgr = AutomationMgr(4, 2, 4, backend=sent.append)
    mgr.set_ports(make_ports())
    return mgr, sent


def test_initial_state(setup):
    mgr, _ = setup
    assert [mgr.get_name(i) for i in range(4)] == ["Slot 1", "Slot 2", "Slot 3", "Slot 4"]
    slot = mgr.slots[0]
    assert (slot.midi_cc, slot.midi_nrpn, slot.learning) == (-1, -1, -1)
    assert slot.automations[0].map.gain == 100.0
    assert slot.automations[0].map.npoints == 4
    assert mgr.free_slot() == 0


def test_too_few_control_points():
    with pytest.raises(ValueError):
        AutomationMgr(1, 1, 2)


def test_create_binding_float(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume")
    au = mgr.slots[0].automations[0]
    assert au.used and au.active
    assert au.param_type == "f"
    assert au.param_path == "/volume"
    assert (au.param_min, au.param_max) == (0.0, 1.0)
    assert mgr.slots[0].used
    assert mgr.damaged


def test_binding_types(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/detune")
    mgr.create_binding(1, "/enabled")
    assert mgr.slots[0].automations[0].param_type == "i"
    toggle = mgr.slots[1].automations[0]
    assert toggle.param_type == "T"
    assert (toggle.param_min, toggle.param_max) == (0.0, 1.0)


def test_set_slot_reaches_bounds(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/volume")
    mgr.set_slot(0, 1.0)
    assert sent[-1] == Message("/volume", (ArgVal("f", 1.0),))
    mgr.set_slot(0, 0.0)
    assert sent[-1] == Message("/volume", (ArgVal("f", 0.0),))
    assert mgr.get_slot(0) == 0.0


def test_set_slot_clamps(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/volume")
    mgr.set_slot(0, 2.0)
    assert sent[-1].args[0].value == 1.0
    mgr.set_slot(0, -3.0)
    assert sent[-1].args[0].value == 0.0


def test_int_parameter(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/detune")
    mgr.set_slot(0, 1.0)
    assert sent[-1] == Message("/detune", (ArgVal("i", 127),))


def test_log_scale(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/cutoff")
    assert mgr.slots[0].automations[0].map.control_scale == 1
    mgr.set_slot(0, 1.0)
    assert sent[-1].args[0].value == pytest.approx(1000.0)
    mgr.set_slot(0, 0.0)
    assert sent[-1].args[0].value == pytest.approx(1.0)


def test_toggle_parameter(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/enabled")
    mgr.set_slot(0, 1.0)
    assert sent[-1] == Message("/enabled", (ArgVal("T", True),))
    mgr.set_slot(0, 0.0)
    assert sent[-1] == Message("/enabled", (ArgVal("F", False),))


def test_nested_path(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/voice/pan")
    mgr.set_slot(0, 0.0)
    assert sent[-1] == Message("/voice/pan", (ArgVal("f", -1.0),))


@pytest.mark.parametrize("path", ["/missing", "/loose", "/hidden", "/locked"])
def test_unbindable_ports(setup, path):
    mgr, _ = setup
    with pytest.raises(AutomationError):
        mgr.create_binding(0, path)
    assert not mgr.slots[0].used


def test_no_ports_set():
    mgr = AutomationMgr(1, 1, 4)
    with pytest.raises(RuntimeError):
        mgr.create_binding(0, "/volume")


def test_slot_full(setup):
    mgr, _ = setup
    for path in ("/volume", "/detune", "/enabled"):
        mgr.create_binding(0, path)
    paths = [au.param_path for au in mgr.slots[0].automations]
    assert paths == ["/volume", "/detune"]


def test_gain_offset_round_trip(setup):
    mgr, _ = setup
    mgr.set_slot_sub_gain(0, 1, 42.0)
    mgr.set_slot_sub_offset(0, 1, -7.0)
    assert mgr.get_slot_sub_gain(0, 1) == 42.0
    assert mgr.get_slot_sub_offset(0, 1) == -7.0


def test_update_mapping_is_symmetric(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume")
    mgr.set_slot_sub_gain(0, 0, 50.0)
    mgr.update_mapping(0, 0)
    points = mgr.slots[0].automations[0].map.control_points
    assert points[0] == 0.0 and points[2] == 1.0
    assert points[1] + points[3] == pytest.approx(1.0)
    assert points[1] < points[3]


def test_out_of_range_access(setup):
    mgr, sent = setup
    assert mgr.get_slot(99) == 0.0
    assert mgr.get_name(99) == ""
    assert mgr.get_slot_sub_gain(0, 5) == 0.0
    mgr.set_slot(99, 1.0)
    mgr.set_name(-1, "x")
    assert sent == []
    with pytest.raises(IndexError):
        mgr.create_binding(99, "/volume")


def test_midi_learn_cc(setup):
    mgr, sent = setup
    mgr.create_binding(0, "/volume", True)
    assert mgr.slots[0].learning == 1
    assert mgr.learn_queue_len == 1
    assert mgr.handle_midi(2, 7, 127) is False
    assert mgr.slots[0].midi_cc == 2 * 128 + 7
    assert mgr.slots[0].learning == -1
    assert mgr.learn_queue_len == 0
    assert sent[-1].args[0].value == pytest.approx(1.0)
    assert mgr.handle_midi(2, 7, 0) is True
    assert sent[-1].args[0].value == pytest.approx(0.0)


def test_learn_queue_order(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume", True)
    mgr.create_binding(1, "/detune", True)
    assert [mgr.slots[0].learning, mgr.slots[1].learning] == [1, 2]
    mgr.handle_midi(0, 10, 64)
    assert mgr.slots[0].midi_cc == 10
    assert mgr.slots[1].learning == 1


def test_nrpn(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume")
    mgr.slots[0].midi_nrpn = (1 << 7) + 2
    assert mgr.handle_midi(0, MidiControl.NRPN_HI, 1) is False
    assert mgr.handle_midi(0, MidiControl.NRPN_LO, 2) is False
    assert mgr.handle_midi(0, MidiControl.DATA_ENTRY_HI, 3) is False
    assert mgr.handle_midi(0, MidiControl.DATA_ENTRY_LO, 4) is True
    assert mgr.get_slot(0) == pytest.approx(((3 << 7) + 4) / 16383.0)


def test_clear_slot(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume")
    mgr.set_name(0, "Filter")
    mgr.set_slot(0, 0.5)
    mgr.clear_slot(0)
    slot = mgr.slots[0]
    assert not slot.used
    assert slot.name == "Slot 1"
    assert slot.current_state == 0.0
    assert all(not au.used and au.param_path == "" for au in slot.automations)
    assert mgr.free_slot() == 0


def test_free_slot(setup):
    mgr, _ = setup
    mgr.create_binding(0, "/volume")
    assert mgr.free_slot() == 1
    for i in range(1, 4):
        mgr.create_binding(i, "/volume")
    assert mgr.free_slot() is None


def test_set_name(setup):
    mgr, _ = setup
    mgr.set_name(2, "Cutoff sweep")
    assert mgr.get_name(2) == "Cutoff sweep"
    assert mgr.damaged


def test_simple_slope(setup):
    mgr, _ = setup
    mgr.simple_slope(0, 0, 2.0, 0.5)
    points = mgr.slots[0].automations[0].map.control_points
    assert points[3] - points[1] == pytest.approx(2.0)
    assert (points[1] + points[3]) / 2 == pytest.approx(0.5)
    assert mgr.slots[0].automations[0].map.upoints == 2


def test_set_slot_sub_path_keeps_gain(setup):
    mgr, _ = setup
    mgr.set_slot_sub_gain(1, 1, 50.0)
    mgr.set_slot_sub_path(1, 1, "/volume")
    au = mgr.slots[1].automations[1]
    assert au.param_path == "/volume"
    assert au.map.gain == 50.0
    with pytest.raises(IndexError):
        mgr.set_slot_sub_path(1, 5, "/volume")


def test_set_instance(setup):
    mgr, _ = setup
    target = object()
    mgr.set_instance(target)
    assert mgr.instance is target
    assert math.isfinite(mgr.get_slot(0))