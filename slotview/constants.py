"""Shared constants for the slot view engine.

- ``SLOT_COUNT`` - number of independently loopable slots on the instrument.
- ``DEFAULT_BPM`` - tempo assumed until the first transport sync arrives.
- ``BRIDGE_PROTOCOL`` - protocol tag carried by every wire envelope.
- ``TRIGGER_EPSILON`` - tolerance used when locating a loop boundary so that
  an exact-boundary crossing is not lost to floating point error.
"""

SLOT_COUNT = 16

DEFAULT_BPM = 120.0

BRIDGE_PROTOCOL = "xen.bridge.v1"

FRONTEND_APP = "slotview"
FRONTEND_VERSION = "0.1.0"
SNAPSHOT_SCHEMA_VERSION = 1

TRIGGER_EPSILON = 1e-9

# Quarter notes per whole note, used to turn a time signature into a loop length.
QUARTERS_PER_WHOLE = 4.0
