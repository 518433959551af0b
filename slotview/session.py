"""The view session: one owner for everything the sequencer roll displays.

A :class:`ViewSession` holds the phase store, the latest slot contents, the
foreground selection, the command line text and the frame clock.  Messages
from the backend and the host clock go in through :meth:`ViewSession.handle`
(or the specific ``apply_*`` methods); the rendering layer reads the derived
values back out and can subscribe to change events:

- ``"phase"`` - ``(displayed_phase)`` after every correction, activation or frame.
- ``"snapshot"`` - ``(version)`` after new slot contents are applied.
- ``"activation"`` - ``(slot_index, active)`` after note-on / note-off.
- ``"foreground"`` - ``(slot_index)`` after the foreground slot changes.

Nothing in here raises for bad input.  Unknown slots, stale snapshots and
malformed envelopes are logged and ignored.

```python
session = slotview.session.ViewSession(frame_rate=60)
session.events.on("phase", lambda phase: print(phase))
session.start()                      # inside a running event loop
session.handle_envelope(raw_event)   # from the bridge
overlays = session.background_overlays()
```
"""

import asyncio
import logging
import time
import typing

import slotview.cells
import slotview.constants
import slotview.event_emitter
import slotview.flatten
import slotview.frame_clock
import slotview.messages
import slotview.pattern_prefix
import slotview.projection
import slotview.transport


logger = logging.getLogger(__name__)


class ViewSession:

	"""Owns the transport state and produces display values for the foreground slot."""

	def __init__ (
		self,
		frame_rate: float = 60.0,
		stale_sync_seconds: typing.Optional[float] = None,
		clock: typing.Optional[typing.Callable[[], float]] = None
	) -> None:

		"""Create an empty session.

		Parameters:
			frame_rate: Frames per second for playhead extrapolation.
			stale_sync_seconds: When set, a phase sample arriving more than this
				many seconds after the previous one for its slot is unwrapped
				against the elapsed time rather than the half-loop rule.
			clock: Time source (seconds) used to stamp sync arrivals.  Defaults
				to the running event loop's clock.
		"""

		self.transport = slotview.transport.TransportState()
		self.slots: typing.Dict[int, slotview.cells.Slot] = {}
		self.foreground = 0
		self.selected_path: slotview.cells.Path = ()
		self.snapshot_version: typing.Optional[int] = None
		self.displayed_phase: typing.Optional[float] = None

		self.command_mode = False
		self.command_text = ""

		self.events = slotview.event_emitter.EventEmitter()

		self._spans: typing.List[typing.List[slotview.flatten.NoteSpan]] = [[] for _ in range(slotview.constants.SLOT_COUNT)]
		self._stale_sync_seconds = stale_sync_seconds
		self._clock = clock
		self._frame_clock = slotview.frame_clock.FrameClock(self.tick, frame_rate)

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------

	@property
	def running (self) -> bool:
		return self._frame_clock.running

	def start (self) -> None:

		"""Start extrapolating the foreground playhead.  Needs a running event loop."""

		self._frame_clock.start()
		logger.debug(f"Frame clock started for slot {self.foreground}")

	def close (self) -> None:

		"""Stop the frame clock.  The session keeps its state and can be started again."""

		self._frame_clock.stop()

	def _now (self) -> float:

		if self._clock is not None:
			return self._clock()

		try:
			return asyncio.get_running_loop().time()
		except RuntimeError:
			return time.monotonic()

	# ------------------------------------------------------------------
	# Inbound messages
	# ------------------------------------------------------------------

	def handle_envelope (self, raw: typing.Any) -> None:

		"""Route a decoded JSON envelope from the bridge into the session."""

		try:
			envelope = slotview.messages.parse_envelope(raw)
		except slotview.messages.EnvelopeError as exc:
			logger.debug(f"Dropping envelope: {exc}")
			return

		message = slotview.messages.decode_event(envelope)

		if message is None:
			logger.debug(f"Ignoring {envelope.type} {envelope.name!r}")
			return

		self.handle(message)

	def handle (self, message: typing.Union[slotview.messages.Message, slotview.messages.SlotSnapshot]) -> None:

		"""Apply any boundary message."""

		if isinstance(message, slotview.messages.TransportSync):
			self.apply_sync(message)

		elif isinstance(message, slotview.messages.SlotActivation):
			self.apply_activation(message)

		elif isinstance(message, slotview.messages.StateSnapshot):
			self.apply_state_snapshot(message)

		elif isinstance(message, slotview.messages.SlotSnapshot):
			self.apply_slot_snapshot(message)

		elif isinstance(message, slotview.messages.ForegroundSelection):
			self.select_foreground(message.slot_index)

		else:
			logger.debug(f"Ignoring unsupported message {message!r}")

	def apply_slot_snapshot (self, snapshot: slotview.messages.SlotSnapshot) -> None:

		"""Replace one slot's contents and re-flatten it."""

		if slotview.messages.to_slot_index(snapshot.slot_index) is None:
			logger.debug(f"Ignoring snapshot for unknown slot {snapshot.slot_index!r}")
			return

		self._set_slot(snapshot.to_slot())

	def apply_state_snapshot (self, snapshot: slotview.messages.StateSnapshot) -> bool:

		"""Apply a full editor snapshot unless an equal or newer one was already applied.

		Returns True if the snapshot was applied.
		"""

		if self.snapshot_version is not None and snapshot.version <= self.snapshot_version:
			logger.debug(f"Ignoring stale snapshot {snapshot.version} (have {self.snapshot_version})")
			return False

		self.snapshot_version = snapshot.version

		for index in list(self.slots):
			if index not in snapshot.slots:
				del self.slots[index]
				self._spans[index] = []

		for slot_snapshot in snapshot.slots.values():
			self._set_slot(slot_snapshot.to_slot(), emit=False)

		self.selected_path = snapshot.selected_path

		if snapshot.selected_slot is not None:
			self.select_foreground(snapshot.selected_slot)

		self.events.emit("snapshot", snapshot.version)

		return True

	def _set_slot (self, slot: slotview.cells.Slot, emit: bool = True) -> None:

		self.slots[slot.index] = slot
		self._spans[slot.index] = slotview.flatten.flatten_slot(slot)

		if emit:
			self.events.emit("snapshot", self.snapshot_version)

	def apply_sync (self, sync: slotview.messages.TransportSync) -> typing.Set[int]:

		"""Apply authoritative phases and tempo, then refresh the playhead.

		Returns the slots whose phase was updated.
		"""

		updated = slotview.transport.apply_sync(
			self.transport,
			sync,
			now = self._now(),
			stale_after = self._stale_sync_seconds,
			loop_quarters = self.loop_length
		)

		self._refresh_phase()

		return updated

	def apply_activation (self, activation: slotview.messages.SlotActivation) -> None:

		"""Handle a slot's note-on / note-off trigger."""

		if activation.kind == slotview.messages.ActivationKind.ON:
			changed = slotview.transport.note_on(self.transport, activation.slot_index)
		else:
			changed = slotview.transport.note_off(self.transport, activation.slot_index)

		if not changed:
			logger.debug(f"Ignoring activation for unknown slot {activation.slot_index!r}")
			return

		self.events.emit("activation", activation.slot_index, activation.kind == slotview.messages.ActivationKind.ON)

		if activation.slot_index == self.foreground:
			self._refresh_phase()

	def select_foreground (self, slot_index: int) -> None:

		"""Make ``slot_index`` the foreground slot.

		The frame clock is restarted so the integrator never carries elapsed
		time from one slot to another.
		"""

		if slotview.messages.to_slot_index(slot_index) is None:
			logger.debug(f"Ignoring selection of unknown slot {slot_index!r}")
			return

		if slot_index == self.foreground:
			return

		self.foreground = slot_index

		if self._frame_clock.running:
			self._frame_clock.stop()
			self._frame_clock.start()

		self.events.emit("foreground", slot_index)
		self._refresh_phase()

	def _refresh_phase (self) -> None:

		self._set_displayed_phase(slotview.transport.displayed_phase(self.transport, self.foreground))

	def _set_displayed_phase (self, phase: typing.Optional[float]) -> None:

		if phase is None and self.displayed_phase is None:
			return

		self.displayed_phase = phase
		self.events.emit("phase", phase)

	# ------------------------------------------------------------------
	# Frame integration
	# ------------------------------------------------------------------

	def tick (self, dt_seconds: float) -> typing.Optional[float]:

		"""Advance the foreground playhead by one frame and return what to display."""

		phase = slotview.transport.advance(self.transport, self.foreground, self.loop_length(self.foreground), dt_seconds)
		self._set_displayed_phase(phase)
		return phase

	# ------------------------------------------------------------------
	# Derived display values
	# ------------------------------------------------------------------

	def loop_length (self, slot_index: int) -> float:

		"""Quarter notes per loop for a slot, 0.0 if the slot is empty or its signature invalid."""

		slot = self.slots.get(slot_index)
		return slot.loop_length_quarters if slot is not None else 0.0

	def spans (self, slot_index: int) -> typing.List[slotview.flatten.NoteSpan]:

		if slotview.messages.to_slot_index(slot_index) is None:
			return []

		return list(self._spans[slot_index])

	@property
	def foreground_slot (self) -> typing.Optional[slotview.cells.Slot]:
		return self.slots.get(self.foreground)

	@property
	def foreground_spans (self) -> typing.List[slotview.flatten.NoteSpan]:
		return self.spans(self.foreground)

	def background_overlays (self) -> typing.List[slotview.projection.BackgroundOverlay]:

		"""Project every other active slot into the foreground's current loop."""

		return slotview.projection.project_all(self.transport, self.slots, self._spans, self.foreground)

	# ------------------------------------------------------------------
	# Command line preview
	# ------------------------------------------------------------------

	def open_command_mode (self) -> None:
		self.command_mode = True

	def close_command_mode (self, preserve_text: bool = False) -> None:

		self.command_mode = False

		if not preserve_text:
			self.command_text = ""

	def set_command_text (self, text: str) -> None:
		self.command_text = text

	def leaf_paths (self) -> typing.List[slotview.cells.Path]:

		"""Leaf paths of the foreground slot in document order."""

		slot = self.foreground_slot
		return slotview.cells.collect_leaf_paths(slot.root) if slot is not None else []

	def preview_indices (self) -> typing.Optional[typing.Set[int]]:

		"""Sibling indices the command text's pattern would select, or None without a pattern."""

		slot = self.foreground_slot
		pattern = slotview.pattern_prefix.parse_prefix(self.command_text) if self.command_mode else None

		if slot is None or pattern is None:
			return None

		length = slotview.pattern_prefix.scope_length(slot.root, self.selected_path)
		return slotview.pattern_prefix.match_indices(length, pattern)

	def displayed_leaf_flags (self) -> typing.List[bool]:

		"""Per-leaf highlight flags: the pattern preview while typing one, else the selection."""

		slot = self.foreground_slot

		if slot is None:
			return []

		if self.command_mode:
			preview = slotview.pattern_prefix.preview_leaf_flags(self.command_text, slot.root, self.selected_path)
			if preview is not None:
				return preview

		return slotview.pattern_prefix.selected_leaf_flags(self.leaf_paths(), self.selected_path)
