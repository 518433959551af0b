"""Per-slot phase state, authoritative correction and local extrapolation.

The realtime engine sends sparse phase samples for each playing slot.
Between samples the foreground slot's playhead is extrapolated locally from
the shared tempo.  Two producers mutate the store:

- **Correction** (:func:`apply_sync`, :func:`apply_phase_sample`) runs when
  a transport message arrives and applies to every slot it mentions.
- **Integration** (:func:`advance`) runs once per display frame, for the
  foreground slot only.

Each slot keeps both a *wrapped* phase in ``[0, 1)`` and an *unwrapped*
phase that keeps counting across loop boundaries.  Cross-slot projection
works on the unwrapped value so its ratio arithmetic never sees a wrap.

Both producers run on the same event loop, so a correction is always fully
applied before the next frame reads phase.  Nothing here locks.
"""

import dataclasses
import logging
import math
import typing

import slotview.constants

if typing.TYPE_CHECKING:
	import slotview.messages


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class PhaseState:

	"""Play position of one slot."""

	active: bool = False
	wrapped: float = 0.0
	unwrapped: float = 0.0
	# Event loop time of the last authoritative sample, and the unwrapped phase it
	# left behind.  Used by the staleness policy.
	last_sample_time: typing.Optional[float] = None
	unwrapped_at_sample: float = 0.0

	def reset (self) -> None:

		"""Return to the inactive, zero-phase state."""

		self.active = False
		self.wrapped = 0.0
		self.unwrapped = 0.0
		self.last_sample_time = None
		self.unwrapped_at_sample = 0.0


class TransportState:

	"""The phase store: one :class:`PhaseState` per slot plus the shared tempo.

	A single instance is owned by the session and passed explicitly to the
	correction and integration functions below.
	"""

	def __init__ (self, bpm: float = slotview.constants.DEFAULT_BPM, slot_count: int = slotview.constants.SLOT_COUNT) -> None:

		self.bpm = bpm
		self.slots: typing.List[PhaseState] = [PhaseState() for _ in range(slot_count)]

	def __len__ (self) -> int:
		return len(self.slots)

	def get (self, slot_index: int) -> typing.Optional[PhaseState]:

		"""Return the slot's state, or None for an index outside the store."""

		if not isinstance(slot_index, int) or isinstance(slot_index, bool) or slot_index < 0 or slot_index >= len(self.slots):
			return None

		return self.slots[slot_index]

	def active_indices (self) -> typing.List[int]:
		return [index for index, phase in enumerate(self.slots) if phase.active]


def normalize_phase (value: float) -> float:

	"""Fold any finite value into ``[0, 1)``."""

	folded = value % 1.0

	# -1e-20 % 1.0 rounds to 1.0
	if folded >= 1.0:
		return 0.0

	return folded


def unwrap_delta (previous_wrapped: float, wrapped: float, expected_advance: typing.Optional[float] = None) -> float:

	"""Return how far the unwrapped phase moved between two wrapped samples.

	Without ``expected_advance`` the shortest path is taken: consecutive
	samples are assumed to be less than half a loop apart, so a jump of more
	than half a loop is read as a wrap in the other direction.

	With ``expected_advance`` (loops of travel predicted from elapsed time and
	tempo) the whole number of loops is chosen that lands nearest the
	prediction.  This resolves gaps longer than half a loop.
	"""

	delta = wrapped - previous_wrapped

	if expected_advance is not None and math.isfinite(expected_advance):
		return delta + round(expected_advance - delta)

	if delta > 0.5:
		delta -= 1.0
	elif delta < -0.5:
		delta += 1.0

	return delta


def loop_seconds (loop_quarters: float, bpm: float) -> float:

	"""Duration of one loop in seconds, or 0.0 when tempo or loop length is degenerate."""

	if loop_quarters <= 0 or bpm <= 0 or not math.isfinite(bpm):
		return 0.0

	return loop_quarters * 60.0 / bpm


def apply_phase_sample (
	state: TransportState,
	slot_index: int,
	phase: float,
	now: typing.Optional[float] = None,
	stale_after: typing.Optional[float] = None,
	loop_quarters: float = 0.0
) -> bool:

	"""Apply one authoritative phase sample to ``slot_index``.

	Parameters:
		state: The phase store.
		slot_index: Slot the sample belongs to.  Unknown indices are ignored.
		phase: Wrapped phase reported by the engine.  Non-finite values are ignored.
		now: Event loop time of arrival, recorded for the staleness policy.
		stale_after: When set, and the previous sample for this slot is older
			than this many seconds, the loop count is chosen from elapsed time
			instead of the half-loop rule.
		loop_quarters: The slot's loop length, needed only by the staleness policy.

	Returns:
		True if the sample was applied.
	"""

	slot = state.get(slot_index)

	if slot is None:
		logger.debug(f"Ignoring phase sample for unknown slot {slot_index!r}")
		return False

	if not isinstance(phase, (int, float)) or isinstance(phase, bool) or not math.isfinite(phase):
		logger.debug(f"Ignoring non-finite phase sample for slot {slot_index}")
		return False

	wrapped = normalize_phase(float(phase))
	expected: typing.Optional[float] = None

	if stale_after is not None and now is not None and slot.last_sample_time is not None:

		gap = now - slot.last_sample_time
		seconds = loop_seconds(loop_quarters, state.bpm)

		if gap > stale_after and seconds > 0:
			# Loops the integrator already added since the last sample are not expected again.
			expected = gap / seconds - (slot.unwrapped - slot.unwrapped_at_sample)
			logger.debug(f"Slot {slot_index} sync gap {gap:.3f}s, unwrapping against {expected:.3f} loops")

	slot.unwrapped += unwrap_delta(slot.wrapped, wrapped, expected)
	slot.wrapped = wrapped

	slot.unwrapped_at_sample = slot.unwrapped

	if now is not None:
		slot.last_sample_time = now

	return True


def apply_sync (
	state: TransportState,
	sync: "slotview.messages.TransportSync",
	now: typing.Optional[float] = None,
	stale_after: typing.Optional[float] = None,
	loop_quarters: typing.Optional[typing.Callable[[int], float]] = None
) -> typing.Set[int]:

	"""Apply a transport sync message and return the slots whose phase was updated.

	A finite positive ``bpm`` replaces the shared tempo; anything else leaves
	the tempo alone while the phase entries still apply.  Bad entries are
	skipped one at a time.
	"""

	bpm = sync.bpm

	if isinstance(bpm, (int, float)) and not isinstance(bpm, bool) and math.isfinite(bpm) and bpm > 0:
		state.bpm = float(bpm)
	elif bpm is not None:
		logger.debug(f"Ignoring invalid sync bpm {bpm!r}")

	updated: typing.Set[int] = set()

	for sample in sync.phases:

		quarters = loop_quarters(sample.slot_index) if loop_quarters is not None and stale_after is not None else 0.0

		if apply_phase_sample(state, sample.slot_index, sample.phase, now=now, stale_after=stale_after, loop_quarters=quarters):
			updated.add(sample.slot_index)

	return updated


def note_on (state: TransportState, slot_index: int) -> bool:

	"""Mark a slot active.  Its phase is left for the next sync to set."""

	slot = state.get(slot_index)

	if slot is None:
		return False

	slot.active = True
	return True


def note_off (state: TransportState, slot_index: int) -> bool:

	"""Mark a slot inactive and reset both phases to zero."""

	slot = state.get(slot_index)

	if slot is None:
		return False

	slot.reset()
	return True


def advance (state: TransportState, slot_index: int, loop_quarters: float, dt_seconds: float) -> typing.Optional[float]:

	"""Extrapolate a slot's phase by ``dt_seconds`` of wall time.

	Returns the new wrapped phase to display, or None when the slot is
	inactive or its tempo or loop length is degenerate.  Both stored phases
	advance together, so the next correction only applies the drift between
	the extrapolated and the reported position.
	"""

	slot = state.get(slot_index)

	if slot is None or not slot.active:
		return None

	seconds = loop_seconds(loop_quarters, state.bpm)

	if seconds <= 0:
		return None

	step = max(0.0, dt_seconds) / seconds

	slot.unwrapped += step
	slot.wrapped = normalize_phase(slot.wrapped + step)

	return slot.wrapped


def displayed_phase (state: TransportState, slot_index: int) -> typing.Optional[float]:

	"""The playhead to show for a slot right now: its wrapped phase while active."""

	slot = state.get(slot_index)

	if slot is None or not slot.active:
		return None

	return slot.wrapped
