"""Boundary messages and tolerant parsing of the backend's JSON envelopes.

Every message on the bridge is an envelope::

	{"protocol": "xen.bridge.v1", "type": "event", "name": "transport.phase.sync",
	 "payload": {"bpm": 120, "phases": [{"sequence_index": 0, "phase": 0.25}]}}

Envelope-level problems raise :class:`EnvelopeError`.  Everything below the
envelope degrades per item instead: a malformed cell, measure or phase entry
is dropped on its own and the rest of the message still applies.
"""

import dataclasses
import enum
import logging
import math
import typing
import uuid

import slotview.cells
import slotview.constants


logger = logging.getLogger(__name__)


EVENT_STATE_CHANGED = "state.changed"
EVENT_NOTE_ON = "transport.trigger.noteOn"
EVENT_NOTE_OFF = "transport.trigger.noteOff"
EVENT_PHASE_SYNC = "transport.phase.sync"

REQUEST_HELLO = "session.hello"
REQUEST_STATE = "state.get"
REQUEST_COMMAND = "command.execute"

ENVELOPE_TYPES = ("request", "response", "event")
MESSAGE_LEVELS = ("debug", "info", "warning", "error")


class EnvelopeError (ValueError):
	pass


@dataclasses.dataclass
class Envelope:

	"""A decoded bridge envelope."""

	type: str
	name: str
	payload: typing.Dict[str, typing.Any]
	request_id: typing.Optional[str] = None

	def to_wire (self) -> typing.Dict[str, typing.Any]:

		"""Dictionary ready for ``json.dumps``."""

		wire: typing.Dict[str, typing.Any] = {
			"protocol": slotview.constants.BRIDGE_PROTOCOL,
			"type": self.type,
			"name": self.name,
			"payload": self.payload,
		}

		if self.request_id is not None:
			wire["request_id"] = self.request_id

		return wire


@dataclasses.dataclass (frozen=True)
class SlotSnapshot:

	"""New contents for one slot."""

	slot_index: int
	root: slotview.cells.Cell
	time_signature: slotview.cells.TimeSignature

	def to_slot (self) -> slotview.cells.Slot:
		return slotview.cells.Slot(index=self.slot_index, root=self.root, time_signature=self.time_signature)


@dataclasses.dataclass (frozen=True)
class StateSnapshot:

	"""The backend's full editor state: every slot plus the current selection."""

	version: int
	slots: typing.Dict[int, SlotSnapshot]
	selected_slot: typing.Optional[int]
	selected_path: typing.Tuple[int, ...] = ()


@dataclasses.dataclass (frozen=True)
class PhaseSample:
	slot_index: int
	phase: float


@dataclasses.dataclass (frozen=True)
class TransportSync:

	"""Authoritative tempo and wrapped phases from the host clock."""

	bpm: typing.Optional[float]
	phases: typing.Tuple[PhaseSample, ...] = ()


class ActivationKind (str, enum.Enum):
	ON = "on"
	OFF = "off"


@dataclasses.dataclass (frozen=True)
class SlotActivation:
	slot_index: int
	kind: ActivationKind


@dataclasses.dataclass (frozen=True)
class ForegroundSelection:
	slot_index: int


@dataclasses.dataclass (frozen=True)
class CommandStatus:

	"""Status line returned with a command response."""

	level: str
	message: str


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------

def _is_number (value: typing.Any) -> bool:

	"""True for finite ints and floats.  JSON booleans decode to bool, an int subclass, and are rejected."""

	return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _as_record (value: typing.Any) -> typing.Optional[typing.Dict[str, typing.Any]]:
	return value if isinstance(value, dict) else None


def to_slot_index (value: typing.Any) -> typing.Optional[int]:

	"""Return ``value`` as a slot index, or None unless it is an integer in range."""

	if not _is_number(value):
		return None

	if isinstance(value, float):
		if not value.is_integer():
			return None
		value = int(value)

	if value < 0 or value >= slotview.constants.SLOT_COUNT:
		return None

	return value


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def parse_envelope (raw: typing.Any) -> Envelope:

	"""Validate a decoded JSON value as a bridge envelope.

	Raises:
		EnvelopeError: If the value is not an object, carries the wrong
			protocol tag, or has a missing or malformed field.
	"""

	candidate = _as_record(raw)

	if candidate is None:
		raise EnvelopeError("Envelope is not an object")

	if candidate.get("protocol") != slotview.constants.BRIDGE_PROTOCOL:
		raise EnvelopeError(f"Unexpected bridge protocol {candidate.get('protocol')!r}")

	if candidate.get("type") not in ENVELOPE_TYPES:
		raise EnvelopeError(f"Unexpected envelope type {candidate.get('type')!r}")

	name = candidate.get("name")

	if not isinstance(name, str):
		raise EnvelopeError("Envelope name must be a string")

	payload = _as_record(candidate.get("payload"))

	if payload is None:
		raise EnvelopeError("Envelope payload must be an object")

	request_id = candidate.get("request_id")

	return Envelope(
		type = candidate["type"],
		name = name,
		payload = payload,
		request_id = request_id if isinstance(request_id, str) else None
	)


def make_request (name: str, payload: typing.Optional[typing.Dict[str, typing.Any]] = None) -> Envelope:

	"""Build a request envelope with a fresh request id."""

	return Envelope(type="request", name=name, payload=payload or {}, request_id=uuid.uuid4().hex)


def payload_error (payload: typing.Dict[str, typing.Any]) -> typing.Optional[str]:

	"""The ``error.message`` of a response payload, if any."""

	error = _as_record(payload.get("error"))

	if error is None:
		return None

	message = error.get("message")
	return message if isinstance(message, str) else None


def command_status (payload: typing.Dict[str, typing.Any]) -> typing.Optional[CommandStatus]:

	"""The ``status`` block of a command response, if well formed."""

	status = _as_record(payload.get("status"))

	if status is None:
		return None

	level = status.get("level")
	message = status.get("message")

	if level not in MESSAGE_LEVELS or not isinstance(message, str):
		return None

	return CommandStatus(level=level, message=message)


# ---------------------------------------------------------------------------
# Cell trees and snapshots
# ---------------------------------------------------------------------------

def parse_cell (value: typing.Any) -> typing.Optional[slotview.cells.Cell]:

	"""Decode one wire cell, or return None if it is malformed.

	Malformed children of a group are dropped; the group itself survives.
	"""

	cell = _as_record(value)

	if cell is None or not _is_number(cell.get("weight")):
		return None

	kind = cell.get("type")
	weight = float(cell["weight"])

	if kind == "Note":

		fields = ("pitch", "velocity", "delay", "gate")

		if not all(_is_number(cell.get(field)) for field in fields):
			return None

		return slotview.cells.Note(
			weight = weight,
			pitch = int(cell["pitch"]),
			velocity = float(cell["velocity"]),
			delay = float(cell["delay"]),
			gate = float(cell["gate"])
		)

	if kind == "Rest":
		return slotview.cells.Rest(weight=weight)

	if kind in ("Sequence", "Group") and isinstance(cell.get("cells"), list):

		children = tuple(child for child in (parse_cell(item) for item in cell["cells"]) if child is not None)
		return slotview.cells.Group(weight=weight, children=children)

	return None


def parse_time_signature (value: typing.Any) -> typing.Optional[slotview.cells.TimeSignature]:

	"""Decode ``{"numerator": n, "denominator": d}``.  Non-positive values are kept (they disable the slot)."""

	record = _as_record(value)

	if record is None or not _is_number(record.get("numerator")) or not _is_number(record.get("denominator")):
		return None

	return slotview.cells.TimeSignature(numerator=record["numerator"], denominator=record["denominator"])


def parse_slot_snapshot (slot_index: int, value: typing.Any) -> typing.Optional[SlotSnapshot]:

	"""Decode a wire measure (``{"cell": ..., "time_signature": ...}``) for ``slot_index``."""

	record = _as_record(value)

	if record is None:
		return None

	root = parse_cell(record.get("cell"))
	time_signature = parse_time_signature(record.get("time_signature"))

	if root is None or time_signature is None:
		return None

	return SlotSnapshot(slot_index=slot_index, root=root, time_signature=time_signature)


def parse_state_snapshot (value: typing.Any) -> typing.Optional[StateSnapshot]:

	"""Decode a ``state.changed`` payload.

	Slots keep their bank position: a malformed measure leaves a gap rather
	than shifting later slots down.
	"""

	snapshot = _as_record(value)

	if snapshot is None or not _is_number(snapshot.get("snapshot_version")):
		return None

	engine = _as_record(snapshot.get("engine")) or {}
	editor = _as_record(snapshot.get("editor")) or {}
	selected = _as_record(editor.get("selected")) or {}

	slots: typing.Dict[int, SlotSnapshot] = {}
	bank = engine.get("sequence_bank")

	if isinstance(bank, list):

		# Keep bank positions: a dropped measure must not shift later slots down.
		for index, measure in enumerate(bank[:slotview.constants.SLOT_COUNT]):

			parsed = parse_slot_snapshot(index, measure)

			if parsed is None:
				logger.debug(f"Dropping malformed measure in slot {index}")
				continue

			slots[index] = parsed

	raw_path = selected.get("cell")
	path = tuple(int(item) for item in raw_path if _is_number(item)) if isinstance(raw_path, list) else ()

	return StateSnapshot(
		version = int(snapshot["snapshot_version"]),
		slots = slots,
		selected_slot = to_slot_index(selected.get("measure")),
		selected_path = path
	)


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def parse_transport_sync (payload: typing.Dict[str, typing.Any]) -> TransportSync:

	"""Decode a ``transport.phase.sync`` payload, dropping bad phase entries one by one."""

	bpm = payload.get("bpm")
	samples: typing.List[PhaseSample] = []

	raw_phases = payload.get("phases")

	for entry in raw_phases if isinstance(raw_phases, list) else []:

		record = _as_record(entry)

		if record is None:
			continue

		slot_index = to_slot_index(record.get("sequence_index"))
		phase = record.get("phase")

		if slot_index is None or not _is_number(phase):
			logger.debug(f"Dropping malformed phase entry {entry!r}")
			continue

		samples.append(PhaseSample(slot_index=slot_index, phase=float(phase)))

	return TransportSync(bpm=float(bpm) if _is_number(bpm) else None, phases=tuple(samples))


def parse_activation (name: str, payload: typing.Dict[str, typing.Any]) -> typing.Optional[SlotActivation]:

	"""Decode a note-on / note-off trigger event, or None for an unknown slot."""

	slot_index = to_slot_index(payload.get("sequence_index"))

	if slot_index is None:
		return None

	kind = ActivationKind.ON if name == EVENT_NOTE_ON else ActivationKind.OFF

	return SlotActivation(slot_index=slot_index, kind=kind)


Message = typing.Union[StateSnapshot, TransportSync, SlotActivation, ForegroundSelection]


def decode_event (envelope: Envelope) -> typing.Optional[Message]:

	"""Turn an event envelope into a boundary message, or None if it is not one the engine consumes."""

	if envelope.type != "event":
		return None

	if envelope.name == EVENT_STATE_CHANGED:
		return parse_state_snapshot(envelope.payload)

	if envelope.name in (EVENT_NOTE_ON, EVENT_NOTE_OFF):
		return parse_activation(envelope.name, envelope.payload)

	if envelope.name == EVENT_PHASE_SYNC:
		return parse_transport_sync(envelope.payload)

	return None
