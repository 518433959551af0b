"""Project background slots into the foreground slot's loop window.

The foreground slot F is drawn as one loop, ``[0, 1)`` in its own phase
coordinates.  A background slot B loops at a different length, so during
one loop of F it may repeat several times, or only part of one loop may go
by.

With ``ratio = F.loop / B.loop``, one loop of F spans ``ratio`` loops of B.
The background phase that lines up with F's coordinate 0 is the *anchor*::

	anchor = B.unwrapped - F.unwrapped * ratio

so F's window covers ``[anchor, anchor + ratio)`` in B's unwrapped phase.
Every background note repeats with period 1 in that space.  For a note
``[start, end)`` the repeats ``k`` that can touch the window are exactly
``floor(anchor - end) + 1 .. ceil(anchor + ratio - start) - 1``.  Only those
are examined: the bound keeps the work proportional to the visible repeats
and guarantees none is missed or counted twice.

Everything here is a pure function of the current phase state and note
spans.  No result is cached between frames.
"""

import dataclasses
import math
import typing

import slotview.cells
import slotview.constants
import slotview.flatten
import slotview.transport


@dataclasses.dataclass (frozen=True)
class BackgroundOverlay:

	"""One background slot's notes and loop restart, in foreground coordinates."""

	slot_index: int
	notes: typing.Tuple[slotview.flatten.NoteSpan, ...]
	trigger_phase: typing.Optional[float]


def _valid_ratio (ratio: float) -> bool:
	return math.isfinite(ratio) and ratio > 0


def anchor_phase (ratio: float, foreground_unwrapped: float, background_unwrapped: float) -> float:

	"""Background unwrapped phase at the foreground's local coordinate 0."""

	return background_unwrapped - foreground_unwrapped * ratio


def loop_repeat_range (anchor: float, ratio: float, start: float, end: float) -> typing.Tuple[int, int]:

	"""Inclusive range of repeats ``k`` for which ``[start + k, end + k)`` can meet the window.

	The range is empty (``first > last``) when no repeat reaches the window.
	"""

	first = math.floor(anchor - end) + 1
	last = math.ceil(anchor + ratio - start) - 1

	return first, last


def window_background_notes (
	spans: typing.Sequence[slotview.flatten.NoteSpan],
	ratio: float,
	foreground_unwrapped: float,
	background_unwrapped: float
) -> typing.List[slotview.flatten.NoteSpan]:

	"""Map every visible repeat of ``spans`` into the foreground's ``[0, 1]`` window.

	Parameters:
		spans: The background slot's flattened notes.
		ratio: Foreground loop length divided by background loop length.
		foreground_unwrapped: Foreground slot's unwrapped phase.
		background_unwrapped: Background slot's unwrapped phase.

	Returns:
		Projected spans in foreground coordinates, keeping pitch, velocity and
		the background slot index.  Empty for a non-finite or non-positive ratio.
	"""

	if not _valid_ratio(ratio):
		return []

	anchor = anchor_phase(ratio, foreground_unwrapped, background_unwrapped)
	window_start = anchor
	window_end = anchor + ratio

	projected: typing.List[slotview.flatten.NoteSpan] = []

	for span in spans:

		note_start = slotview.cells.clamp(span.start)
		note_end = slotview.cells.clamp(span.start + span.width)

		if note_end <= note_start:
			continue

		first, last = loop_repeat_range(anchor, ratio, note_start, note_end)

		for loop_index in range(first, last + 1):

			overlap_start = max(loop_index + note_start, window_start)
			overlap_end = min(loop_index + note_end, window_end)

			if overlap_end <= overlap_start:
				continue

			mapped_start = slotview.cells.clamp((overlap_start - anchor) / ratio)
			mapped_end = slotview.cells.clamp((overlap_end - anchor) / ratio)

			if mapped_end - mapped_start <= 0:
				continue

			projected.append(dataclasses.replace(span, start=mapped_start, width=mapped_end - mapped_start))

	return projected


def projected_trigger_phase (ratio: float, foreground_unwrapped: float, background_unwrapped: float) -> typing.Optional[float]:

	"""Foreground phase at which the background slot next restarts its loop.

	Returns None when the restart falls outside the current foreground loop.
	"""

	if not _valid_ratio(ratio):
		return None

	anchor = anchor_phase(ratio, foreground_unwrapped, background_unwrapped)
	ordinal = math.ceil(anchor - slotview.constants.TRIGGER_EPSILON)
	projected = (ordinal - anchor) / ratio

	if not math.isfinite(projected) or projected < 0 or projected >= 1:
		return None

	return projected


def project_background (
	background_index: int,
	background_spans: typing.Sequence[slotview.flatten.NoteSpan],
	foreground_loop_quarters: float,
	background_loop_quarters: float,
	foreground_unwrapped: float,
	background_unwrapped: float
) -> typing.Optional[BackgroundOverlay]:

	"""Build one background overlay, or None if the loop lengths give no usable ratio."""

	if foreground_loop_quarters <= 0 or background_loop_quarters <= 0:
		return None

	ratio = foreground_loop_quarters / background_loop_quarters

	if not _valid_ratio(ratio):
		return None

	notes = window_background_notes(background_spans, ratio, foreground_unwrapped, background_unwrapped)
	trigger = projected_trigger_phase(ratio, foreground_unwrapped, background_unwrapped)

	return BackgroundOverlay(slot_index=background_index, notes=tuple(notes), trigger_phase=trigger)


def project_all (
	state: slotview.transport.TransportState,
	slots: typing.Mapping[int, slotview.cells.Slot],
	spans_by_slot: typing.Sequence[typing.Sequence[slotview.flatten.NoteSpan]],
	foreground: int
) -> typing.List[BackgroundOverlay]:

	"""Overlays for every other active slot, in slot order.

	Nothing is projected unless the foreground slot is active and has a
	valid loop length.  Slots with an invalid loop length are skipped, and
	overlays with neither notes nor a restart in view are left out.
	"""

	foreground_phase = state.get(foreground)
	foreground_slot = slots.get(foreground)

	if foreground_phase is None or not foreground_phase.active or foreground_slot is None:
		return []

	foreground_quarters = foreground_slot.loop_length_quarters

	if foreground_quarters <= 0:
		return []

	overlays: typing.List[BackgroundOverlay] = []

	for index, phase in enumerate(state.slots):

		if index == foreground or not phase.active:
			continue

		slot = slots.get(index)

		if slot is None:
			continue

		spans = spans_by_slot[index] if index < len(spans_by_slot) else []

		overlay = project_background(
			background_index = index,
			background_spans = spans,
			foreground_loop_quarters = foreground_quarters,
			background_loop_quarters = slot.loop_length_quarters,
			foreground_unwrapped = foreground_phase.unwrapped,
			background_unwrapped = phase.unwrapped
		)

		if overlay is None or (not overlay.notes and overlay.trigger_phase is None):
			continue

		overlays.append(overlay)

	return overlays
