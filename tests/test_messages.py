import pytest

import slotview.cells
import slotview.messages

from conftest import event, wire_measure, wire_note, wire_snapshot


@pytest.mark.parametrize("raw", [
	"not an object",
	{"protocol": "other.v1", "type": "event", "name": "x", "payload": {}},
	{"protocol": "xen.bridge.v1", "type": "broadcast", "name": "x", "payload": {}},
	{"protocol": "xen.bridge.v1", "type": "event", "name": 5, "payload": {}},
	{"protocol": "xen.bridge.v1", "type": "event", "name": "x", "payload": []},
])
def test_parse_envelope_rejects_malformed (raw: object) -> None:

	with pytest.raises(slotview.messages.EnvelopeError):
		slotview.messages.parse_envelope(raw)


def test_parse_envelope_keeps_request_id () -> None:

	raw = {"protocol": "xen.bridge.v1", "type": "response", "name": "state.get", "payload": {}, "request_id": "abc"}

	envelope = slotview.messages.parse_envelope(raw)

	assert envelope.type == "response"
	assert envelope.request_id == "abc"


def test_make_request_round_trips_through_wire () -> None:

	"""Requests carry the protocol tag and a fresh id."""

	first = slotview.messages.make_request("session.hello", {"app": "slotview"})
	second = slotview.messages.make_request("session.hello")

	wire = first.to_wire()

	assert wire["protocol"] == "xen.bridge.v1"
	assert wire["type"] == "request"
	assert wire["payload"] == {"app": "slotview"}
	assert first.request_id != second.request_id
	assert slotview.messages.parse_envelope(wire) == first


def test_parse_cell_tree () -> None:

	"""Sequences become groups; malformed children are dropped."""

	cell = slotview.messages.parse_cell({
		"type": "Sequence",
		"weight": 1,
		"cells": [
			wire_note(60),
			{"type": "Rest", "weight": 2},
			{"type": "Note", "weight": 1, "pitch": 61},
			{"type": "Group", "weight": 1, "cells": []},
			{"type": "Mystery", "weight": 1},
		],
	})

	assert cell == slotview.cells.Group(1.0, (
		slotview.cells.Note(1.0, pitch=60, velocity=1.0, delay=0.0, gate=1.0),
		slotview.cells.Rest(2.0),
		slotview.cells.Group(1.0, ()),
	))


@pytest.mark.parametrize("value", [
	None,
	{"type": "Rest"},
	{"type": "Rest", "weight": True},
	{"type": "Rest", "weight": "1"},
	{"type": "Sequence", "weight": 1},
])
def test_parse_cell_rejects_malformed (value: object) -> None:

	assert slotview.messages.parse_cell(value) is None


def test_parse_state_snapshot () -> None:

	"""A malformed measure leaves a gap; later slots keep their index."""

	payload = wire_snapshot(7, [
		wire_measure([wire_note(60)]),
		{"cell": None, "time_signature": {"numerator": 4, "denominator": 4}},
		wire_measure([wire_note(62)], numerator=3),
	], measure=2, cell=[0, 1])

	snapshot = slotview.messages.parse_state_snapshot(payload)

	assert snapshot.version == 7
	assert sorted(snapshot.slots) == [0, 2]
	assert snapshot.slots[2].time_signature == slotview.cells.TimeSignature(3, 4)
	assert snapshot.selected_slot == 2
	assert snapshot.selected_path == (0, 1)


def test_parse_state_snapshot_caps_bank_at_sixteen () -> None:

	payload = wire_snapshot(1, [wire_measure([wire_note(60)]) for _ in range(20)])

	assert len(slotview.messages.parse_state_snapshot(payload).slots) == 16


def test_parse_state_snapshot_needs_version () -> None:

	assert slotview.messages.parse_state_snapshot({"engine": {"sequence_bank": []}}) is None


def test_parse_transport_sync_drops_bad_entries () -> None:

	"""Each malformed phase entry is dropped on its own."""

	sync = slotview.messages.parse_transport_sync({
		"bpm": 128,
		"phases": [
			{"sequence_index": 0, "phase": 0.25},
			{"sequence_index": 99, "phase": 0.5},
			{"sequence_index": 1.5, "phase": 0.5},
			{"sequence_index": 2, "phase": "x"},
			{"sequence_index": True, "phase": 0.5},
			"junk",
			{"sequence_index": 3.0, "phase": 1.25},
		],
	})

	assert sync.bpm == 128.0
	assert sync.phases == (
		slotview.messages.PhaseSample(0, 0.25),
		slotview.messages.PhaseSample(3, 1.25),
	)


def test_parse_transport_sync_without_bpm () -> None:

	assert slotview.messages.parse_transport_sync({"bpm": "fast"}).bpm is None
	assert slotview.messages.parse_transport_sync({}).phases == ()


def test_decode_event_dispatch () -> None:

	"""Each consumed event name decodes to its message type."""

	def decode (name: str, payload: dict) -> object:
		return slotview.messages.decode_event(slotview.messages.parse_envelope(event(name, payload)))

	assert isinstance(decode("transport.phase.sync", {"bpm": 120, "phases": []}), slotview.messages.TransportSync)
	assert decode("transport.trigger.noteOn", {"sequence_index": 3}) == slotview.messages.SlotActivation(3, slotview.messages.ActivationKind.ON)
	assert decode("transport.trigger.noteOff", {"sequence_index": 3}) == slotview.messages.SlotActivation(3, slotview.messages.ActivationKind.OFF)
	assert decode("transport.trigger.noteOn", {"sequence_index": 40}) is None
	assert isinstance(decode("state.changed", wire_snapshot(1, [])), slotview.messages.StateSnapshot)
	assert decode("something.else", {}) is None


def test_command_status_and_errors () -> None:

	assert slotview.messages.command_status({"status": {"level": "info", "message": "ok"}}) == slotview.messages.CommandStatus("info", "ok")
	assert slotview.messages.command_status({"status": {"level": "loud", "message": "ok"}}) is None
	assert slotview.messages.payload_error({"error": {"message": "bad"}}) == "bad"
	assert slotview.messages.payload_error({}) is None
