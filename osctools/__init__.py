"""OSC argument values and comparison, port trees, automation slots and MIDI learn mapping."""

__version__ = "0.1.0"
__all__ = ["argval", "arg_val_cmp", "ports", "automations", "midimapper"]