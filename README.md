# osctools

Building blocks for Open Sound Control applications that drive synthesizer
parameters. Pure Python, no dependencies.

## Modules

- `osctools.argval`: typed OSC argument values. `ArgVal` pairs a type tag
  character (`i`, `c`, `h`, `f`, `d`, `T`, `F`, `s`, `b`, `a`, ...) with a
  value. `Range` describes a run of values, either a fixed length or endless
  (`num == 0`). Arithmetic is provided by `add`, `sub`, `mult`, `div`,
  `negate` and `round_value`, and conversions by `null`, `from_int`,
  `from_double` and `to_int`. Integer results wrap like 32 or 64 bit values,
  and `f` values are rounded to single precision. `range_arg` gives the n-th
  value of a range, and `iter_values` expands ranges in a sequence. An
  operation that a type does not support raises `ArgValTypeError`. Dividing
  by `F` or by an integer zero raises `ZeroDivisionError`.
- `osctools.arg_val_cmp`: `eq_single` and `cmp_single` compare two single
  values. `eq` and `cmp` compare sequences of values with ranges stepped
  through, and two endless ranges count as finished together. `CmpOptions`
  sets a tolerance for comparing floats. In three-way comparisons the
  timestamp value `1` ("immediately") sorts before every other timestamp.
- `osctools.ports`: `Message` holds an address and its arguments. `Port`
  holds a name pattern such as `"freq:f"` or `"voice#8/"`, metadata (a
  `":key\0=value\0"` string or a mapping) and an optional subtree.
  `PortMap.apropos` resolves a path to the port that handles it, descending
  into subtrees. `PortMap["name"]` looks up a port by its base name.
- `osctools.automations`: `AutomationMgr` manages automation slots. Each slot
  maps one control value in [0, 1] onto several parameters, and the mapping
  is set by gain, offset or `simple_slope`. `handle_midi` takes plain CC and
  NRPN events (`MidiControl`) and supports MIDI learning. Parameter changes
  are sent as `Message` objects to the `backend` callback. Binding a path
  that does not exist, has no `min`/`max` bounds, or is marked `internal` or
  `no learn` raises `AutomationError`.
- `osctools.midimapper`: MIDI learn with coarse and fine (14 bit)
  controllers. `MidiMapperNRT` keeps track of bindings and builds new
  `MidiMapperStorage` tables. `MidiMapperRT` turns incoming controller events
  into parameter messages and takes new tables through `bind` or `dispatch`.
  `MidiBijection` scales between 14 bit MIDI values and a parameter range.

## Installation

```
pip install osctools
```

For running the tests:

```
pip install "osctools[test]"
pytest
```

## Examples

```python
from osctools.argval import from_double, add, to_int

total = add(from_double("i", 40), from_double("i", 2))
print(to_int(total))  # 42
```

```python
from osctools.arg_val_cmp import CmpOptions, eq
from osctools.argval import from_double

a = [from_double("f", 1.0)]
b = [from_double("f", 1.0000001)]
print(eq(a, b, CmpOptions(float_tolerance=1e-3)))  # True
```

```python
from osctools.automations import AutomationMgr
from osctools.ports import Port, PortMap

ports = PortMap([Port("volume:f", ":min\0=0\0:max\0=1\0")])
mgr = AutomationMgr(slots=4, per_slot=2, control_points=4, backend=print)
mgr.set_ports(ports)
mgr.create_binding(0, "/volume")
mgr.set_slot(0, 0.5)  # backend gets a Message for "/volume" with ArgVal("f", 0.5)
```

## What this package does not do

Messages are Python `Message` objects. The package does not encode them to
the OSC binary format or decode them from it, and it has no network
transport. It does not parse or print the human-readable text form of
argument values, and it does not read or write save files. `PortMap` resolves
paths to ports but does not dispatch messages to their callbacks.