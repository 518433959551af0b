"""Flatten a slot's cell tree into normalized note spans.

Each slot's loop is the unit interval ``[0, 1)``.  The root cell owns the
whole interval; a ``Group`` hands each child a contiguous slice whose width
is proportional to the child's weight.  Notes then carve their sounding
span out of their slice using ``delay`` (how far into the slice the note
starts) and ``gate`` (what fraction of the remainder it sounds for).

Spans are returned in tree traversal order, not time order.  Spans from
independent subtrees may overlap.
"""

import dataclasses
import typing

import slotview.cells
import slotview.constants


@dataclasses.dataclass (frozen=True)
class NoteSpan:

	"""A note's position within one loop of its slot, in unit-loop coordinates."""

	slot_index: int
	pitch: int
	start: float
	width: float
	velocity: float = 1.0

	@property
	def end (self) -> float:
		return self.start + self.width


def flatten (root: slotview.cells.Cell, slot_index: int = 0) -> typing.List[NoteSpan]:

	"""Turn ``root`` into its list of note spans.

	Parameters:
		root: The slot's root cell.
		slot_index: Slot the spans belong to (carried through to projections).

	Returns:
		Spans with ``start + width <= 1`` and ``width > 0``.

	Example:
		```python
		root = Group(1, (Note(1, pitch=0), Note(1, pitch=7)))
		flatten(root)
		# [NoteSpan(0, 0, 0.0, 0.5), NoteSpan(0, 7, 0.5, 0.5)]
		```
	"""

	spans: typing.List[NoteSpan] = []
	_walk(root, 0.0, 1.0, slot_index, spans)
	return spans


def _walk (cell: slotview.cells.Cell, segment_start: float, segment_width: float, slot_index: int, spans: typing.List[NoteSpan]) -> None:

	"""Emit spans for ``cell`` occupying ``[segment_start, segment_start + segment_width)``."""

	if segment_width <= 0:
		return

	if isinstance(cell, slotview.cells.Rest):
		return

	if isinstance(cell, slotview.cells.Note):
		span = _note_span(cell, segment_start, segment_width, slot_index)
		if span is not None:
			spans.append(span)
		return

	if not cell.children:
		return

	total_weight = sum(slotview.cells.cell_weight(child.weight) for child in cell.children)

	if total_weight <= 0:
		return

	cursor = segment_start

	for child in cell.children:
		child_width = segment_width * slotview.cells.cell_weight(child.weight) / total_weight
		_walk(child, cursor, child_width, slot_index, spans)
		cursor += child_width


def _note_span (note: slotview.cells.Note, segment_start: float, segment_width: float, slot_index: int) -> typing.Optional[NoteSpan]:

	"""Place one note inside its segment, or return None if nothing is left audible."""

	delay = slotview.cells.clamp(note.delay)
	gate = slotview.cells.clamp(note.gate)

	note_start = segment_start + delay * segment_width
	note_end = note_start + max(0.0, (1 - delay) * gate * segment_width)

	start = slotview.cells.clamp(note_start)
	end = slotview.cells.clamp(note_end)

	if end - start <= 0:
		return None

	return NoteSpan(
		slot_index = slot_index,
		pitch = note.pitch,
		start = start,
		width = end - start,
		velocity = slotview.cells.clamp(note.velocity)
	)


def flatten_slot (slot: slotview.cells.Slot) -> typing.List[NoteSpan]:

	"""Flatten a slot's root cell, tagging spans with the slot's index."""

	return flatten(slot.root, slot.index)


def flatten_bank (slots: typing.Mapping[int, slotview.cells.Slot]) -> typing.List[typing.List[NoteSpan]]:

	"""Flatten every slot, returning one (possibly empty) span list per slot index."""

	flattened: typing.List[typing.List[NoteSpan]] = [[] for _ in range(slotview.constants.SLOT_COUNT)]

	for index, slot in slots.items():
		if 0 <= index < slotview.constants.SLOT_COUNT:
			flattened[index] = flatten_slot(slot)

	return flattened
