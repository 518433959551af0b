import math

import pytest

import slotview.messages
import slotview.transport

from slotview.messages import PhaseSample, TransportSync


@pytest.fixture
def state () -> slotview.transport.TransportState:

	"""A fresh phase store at 120 BPM."""

	return slotview.transport.TransportState(bpm=120.0)


def _place (state: slotview.transport.TransportState, index: int, wrapped: float, unwrapped: float, active: bool = True) -> None:

	slot = state.slots[index]
	slot.active = active
	slot.wrapped = wrapped
	slot.unwrapped = unwrapped


def test_sync_across_loop_boundary_unwraps_forward (state: slotview.transport.TransportState) -> None:

	"""0.9 / 3.9 followed by a 0.05 sample lands on 4.05, not 3.05."""

	_place(state, 0, 0.9, 3.9)

	updated = slotview.transport.apply_sync(state, TransportSync(bpm=None, phases=(PhaseSample(0, 0.05),)))

	assert updated == {0}
	assert state.slots[0].wrapped == pytest.approx(0.05)
	assert state.slots[0].unwrapped == pytest.approx(4.05)


@pytest.mark.parametrize("previous, sample, delta", [
	(0.2, 0.3, 0.1),
	(0.3, 0.25, -0.05),
	(0.05, 0.95, -0.1),
	(0.0, 0.5, 0.5),
])
def test_unwrap_takes_shortest_path (previous: float, sample: float, delta: float) -> None:

	"""Deltas beyond half a loop are read as wraps the other way."""

	assert slotview.transport.unwrap_delta(previous, sample) == pytest.approx(delta)


def test_unwrap_against_expected_advance () -> None:

	"""With an expected advance the nearest whole loop count wins."""

	assert slotview.transport.unwrap_delta(0.1, 0.2, expected_advance=2.1) == pytest.approx(2.1)
	assert slotview.transport.unwrap_delta(0.9, 0.1, expected_advance=3.3) == pytest.approx(3.2)


def test_normalize_phase () -> None:

	assert slotview.transport.normalize_phase(1.25) == pytest.approx(0.25)
	assert slotview.transport.normalize_phase(-0.25) == pytest.approx(0.75)
	assert slotview.transport.normalize_phase(1.0) == 0.0
	assert slotview.transport.normalize_phase(-1e-20) == 0.0


def test_sync_out_of_range_phase_is_folded (state: slotview.transport.TransportState) -> None:

	"""A reported phase of 1.25 is stored as 0.25."""

	slotview.transport.apply_phase_sample(state, 0, 1.25)

	assert state.slots[0].wrapped == pytest.approx(0.25)
	assert state.slots[0].unwrapped == pytest.approx(0.25)


def test_sync_ignores_unknown_slot_and_non_finite_phase (state: slotview.transport.TransportState) -> None:

	"""Bad entries are skipped on their own; the rest still apply."""

	sync = TransportSync(bpm=90.0, phases=(
		PhaseSample(99, 0.5),
		PhaseSample(1, math.nan),
		PhaseSample(2, math.inf),
		PhaseSample(3, 0.4),
	))

	updated = slotview.transport.apply_sync(state, sync)

	assert updated == {3}
	assert state.bpm == 90.0
	assert state.slots[1].unwrapped == 0.0
	assert state.slots[3].wrapped == pytest.approx(0.4)


@pytest.mark.parametrize("bpm", [0.0, -10.0, math.nan, math.inf])
def test_invalid_bpm_keeps_tempo_but_applies_phases (state: slotview.transport.TransportState, bpm: float) -> None:

	"""A bad tempo is ignored without discarding the message's phases."""

	slotview.transport.apply_sync(state, TransportSync(bpm=bpm, phases=(PhaseSample(0, 0.3),)))

	assert state.bpm == 120.0
	assert state.slots[0].wrapped == pytest.approx(0.3)


def test_sync_does_not_activate (state: slotview.transport.TransportState) -> None:

	"""Only note-on activates a slot; a sync just moves its phase."""

	slotview.transport.apply_sync(state, TransportSync(bpm=None, phases=(PhaseSample(5, 0.3),)))

	assert not state.slots[5].active
	assert slotview.transport.displayed_phase(state, 5) is None


def test_note_on_keeps_phase_and_note_off_resets (state: slotview.transport.TransportState) -> None:

	"""note_on leaves phase alone; note_off zeroes it and deactivates."""

	_place(state, 0, 0.4, 2.4, active=False)

	assert slotview.transport.note_on(state, 0)
	assert state.slots[0].active
	assert state.slots[0].unwrapped == pytest.approx(2.4)

	assert slotview.transport.note_off(state, 0)
	assert not state.slots[0].active
	assert state.slots[0].wrapped == 0.0
	assert state.slots[0].unwrapped == 0.0


def test_activation_of_unknown_slot_is_ignored (state: slotview.transport.TransportState) -> None:

	assert not slotview.transport.note_on(state, 16)
	assert not slotview.transport.note_off(state, -1)
	assert state.active_indices() == []


def test_advance_uses_tempo_and_loop_length (state: slotview.transport.TransportState) -> None:

	"""At 120 BPM a 4/4 loop lasts two seconds, so half a second is a quarter loop."""

	_place(state, 0, 0.0, 0.0)

	phase = slotview.transport.advance(state, 0, 4.0, 0.5)

	assert phase == pytest.approx(0.25)
	assert state.slots[0].unwrapped == pytest.approx(0.25)


def test_advance_wraps_and_keeps_counting (state: slotview.transport.TransportState) -> None:

	"""Crossing the loop end wraps the displayed phase but not the unwrapped one."""

	_place(state, 0, 0.9, 2.9)

	phase = slotview.transport.advance(state, 0, 4.0, 0.4)

	assert phase == pytest.approx(0.1)
	assert state.slots[0].unwrapped == pytest.approx(3.1)


def test_advance_skips_inactive_and_degenerate_slots (state: slotview.transport.TransportState) -> None:

	"""Inactive slots, zero loop length and zero tempo do not integrate."""

	_place(state, 0, 0.2, 0.2, active=False)
	assert slotview.transport.advance(state, 0, 4.0, 0.5) is None

	_place(state, 1, 0.2, 0.2)
	assert slotview.transport.advance(state, 1, 0.0, 0.5) is None

	state.bpm = 0.0
	assert slotview.transport.advance(state, 1, 4.0, 0.5) is None
	assert state.slots[1].unwrapped == pytest.approx(0.2)


def test_advance_ignores_negative_elapsed_time (state: slotview.transport.TransportState) -> None:

	_place(state, 0, 0.3, 0.3)

	assert slotview.transport.advance(state, 0, 4.0, -1.0) == pytest.approx(0.3)


def test_correction_after_integration_only_applies_drift (state: slotview.transport.TransportState) -> None:

	"""A sync matching the extrapolated position changes nothing."""

	_place(state, 0, 0.0, 0.0)

	slotview.transport.advance(state, 0, 4.0, 1.0)
	slotview.transport.apply_phase_sample(state, 0, 0.5)

	assert state.slots[0].unwrapped == pytest.approx(0.5)

	slotview.transport.advance(state, 0, 4.0, 1.0)
	slotview.transport.apply_phase_sample(state, 0, 0.02)

	assert state.slots[0].unwrapped == pytest.approx(1.02)


def test_stale_sample_unwraps_against_elapsed_time (state: slotview.transport.TransportState) -> None:

	"""After a long gap the loop count comes from elapsed time and tempo."""

	slotview.transport.apply_phase_sample(state, 0, 0.1, now=0.0, stale_after=1.0, loop_quarters=4.0)
	slotview.transport.apply_phase_sample(state, 0, 0.2, now=5.0, stale_after=1.0, loop_quarters=4.0)

	assert state.slots[0].unwrapped == pytest.approx(2.2)
	assert state.slots[0].last_sample_time == 5.0


def test_fresh_sample_keeps_half_loop_rule (state: slotview.transport.TransportState) -> None:

	"""Samples inside the staleness window still take the shortest path."""

	slotview.transport.apply_phase_sample(state, 0, 0.1, now=0.0, stale_after=1.0, loop_quarters=4.0)
	slotview.transport.apply_phase_sample(state, 0, 0.2, now=0.5, stale_after=1.0, loop_quarters=4.0)

	assert state.slots[0].unwrapped == pytest.approx(0.2)


def test_apply_sync_passes_loop_length_for_staleness (state: slotview.transport.TransportState) -> None:

	"""apply_sync looks up each slot's loop length for the staleness policy."""

	lengths = {0: 4.0, 1: 2.0}
	first = TransportSync(bpm=None, phases=(PhaseSample(0, 0.1), PhaseSample(1, 0.1)))
	second = TransportSync(bpm=None, phases=(PhaseSample(0, 0.2), PhaseSample(1, 0.2)))

	slotview.transport.apply_sync(state, first, now=0.0, stale_after=1.0, loop_quarters=lengths.get)
	slotview.transport.apply_sync(state, second, now=5.0, stale_after=1.0, loop_quarters=lengths.get)

	# 5 s is 2.5 loops of slot 0 and 5 loops of slot 1.
	assert state.slots[0].unwrapped == pytest.approx(2.2)
	assert state.slots[1].unwrapped == pytest.approx(5.2)


def test_get_rejects_out_of_range_indices (state: slotview.transport.TransportState) -> None:

	assert len(state) == 16
	assert state.get(15) is state.slots[15]
	assert state.get(16) is None
	assert state.get(-1) is None


def test_booleans_are_not_slots_or_phases (state: slotview.transport.TransportState) -> None:

	"""True is neither slot 1 nor phase 1.0."""

	assert state.get(True) is None
	assert not slotview.transport.note_on(state, True)
	assert not slotview.transport.apply_phase_sample(state, 0, True)
	assert state.active_indices() == []
	assert state.slots[0].last_sample_time is None


def test_stale_sample_after_integration_counts_loops_once (state: slotview.transport.TransportState) -> None:

	"""Only the loops not already integrated since the last sample are expected."""

	_place(state, 0, 0.0, 0.0)
	slotview.transport.apply_phase_sample(state, 0, 0.0, now=0.0, stale_after=0.5, loop_quarters=4.0)

	# Five seconds at 120 BPM in 4/4 is 2.5 loops.
	for _ in range(10):
		slotview.transport.advance(state, 0, 4.0, 0.5)

	slotview.transport.apply_phase_sample(state, 0, 0.55, now=5.0, stale_after=0.5, loop_quarters=4.0)

	assert state.slots[0].unwrapped == pytest.approx(2.55)
	assert state.slots[0].unwrapped_at_sample == pytest.approx(2.55)
