"""
slotview - transport phase sync and cross-slot projection for a multi-slot
step sequencer UI.

Sixteen loop slots play concurrently, each at a loop length set by its own
time signature, all driven by one host transport clock.  The engine keeps a
phase-accurate picture of every playing slot on the coordinate system of the
selected (foreground) slot, from sparse phase samples plus local
extrapolation.

What it does:

- **Flatten cell trees.** ``flatten.flatten()`` turns a slot's nested, weighted
  Note / Rest / Group tree into note spans on the unit loop.
- **Track phase.** ``TransportState`` keeps wrapped and unwrapped phase per
  slot; corrections come from the host clock, and the foreground playhead is
  extrapolated every frame in between.
- **Project other slots.** ``project_all()`` maps every other active slot's
  repeating notes, and its loop restart, into the foreground loop.
- **Preview bulk selections.** ``parse_prefix()`` / ``match_indices()``
  show which cells a pattern such as ``+2 3 1`` would select before the
  command is sent.

``ViewSession`` wires all of it together behind message handlers, and
``BridgeClient`` / ``OscReceiver`` feed it from the backend.

Minimal example:

    ```python
    import slotview

    session = slotview.ViewSession()
    session.handle_envelope(event)        # decoded JSON from the backend
    session.tick(1 / 60)
    overlays = session.background_overlays()
    ```

Package-level exports: ``ViewSession``, ``BridgeClient``, ``TransportState``,
``project_all``, ``parse_prefix``, ``match_indices``.
"""

import slotview.bridge
import slotview.pattern_prefix
import slotview.projection
import slotview.session
import slotview.transport


ViewSession = slotview.session.ViewSession
BridgeClient = slotview.bridge.BridgeClient
TransportState = slotview.transport.TransportState
project_all = slotview.projection.project_all
parse_prefix = slotview.pattern_prefix.parse_prefix
match_indices = slotview.pattern_prefix.match_indices
