"""OSC input for host-clock transport messages.

Some hosts publish their transport over OSC instead of the bridge.  Start
the receiver with ``await OscReceiver(session).start()``; it listens on a
UDP port (default 9000) and feeds the same session handlers as the bridge.

Receive Handlers
────────────────
- ``/transport/sync <bpm> [<slot> <phase>]...``: Tempo plus phase samples
- ``/transport/on <slot>``: Slot started playing
- ``/transport/off <slot>``: Slot stopped playing
- ``/foreground <slot>``: Select the foreground slot
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server

import slotview.messages

if typing.TYPE_CHECKING:
	from slotview.session import ViewSession


logger = logging.getLogger(__name__)


class OscReceiver:

	"""Async OSC server that forwards transport messages to a :class:`ViewSession`."""

	def __init__ (self, session: "ViewSession", receive_port: int = 9000, host: str = "127.0.0.1") -> None:

		self._session = session
		self._receive_port = receive_port
		self._host = host

		self._server: typing.Optional[pythonosc.osc_server.AsyncIOOSCUDPServer] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/transport/sync", self._handle_sync)
		self._dispatcher.map("/transport/on", self._handle_activation, slotview.messages.ActivationKind.ON)
		self._dispatcher.map("/transport/off", self._handle_activation, slotview.messages.ActivationKind.OFF)
		self._dispatcher.map("/foreground", self._handle_foreground)


	@property
	def port (self) -> typing.Optional[int]:

		"""The bound UDP port (useful when constructed with port 0)."""

		if self._transport is None:
			return None

		return self._transport.get_extra_info("sockname")[1]


	async def start (self) -> None:

		"""Bind the UDP endpoint on the running loop."""

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			(self._host, self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC transport input listening on {self._host}:{self.port}")


	async def stop (self) -> None:

		"""Close the UDP endpoint."""

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC transport input stopped")


	# Handlers

	def _handle_sync (self, address: str, *args: typing.Any) -> None:

		# /transport/sync bpm slot phase slot phase ...
		if not args:
			return

		payload = {
			"bpm": args[0],
			"phases": [{"sequence_index": slot, "phase": phase} for slot, phase in zip(args[1::2], args[2::2])],
		}

		self._session.apply_sync(slotview.messages.parse_transport_sync(payload))

	def _handle_activation (self, address: str, fixed: typing.List[typing.Any], *args: typing.Any) -> None:

		if not args:
			return

		slot_index = slotview.messages.to_slot_index(args[0])

		if slot_index is None:
			logger.debug(f"Ignoring {address} for unknown slot {args[0]!r}")
			return

		self._session.apply_activation(slotview.messages.SlotActivation(slot_index=slot_index, kind=fixed[0]))

	def _handle_foreground (self, address: str, *args: typing.Any) -> None:

		if not args:
			return

		slot_index = slotview.messages.to_slot_index(args[0])

		if slot_index is not None:
			self._session.select_foreground(slot_index)
