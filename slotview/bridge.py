"""WebSocket client for the backend's session protocol.

The backend owns the instrument state and accepts textual commands.  This
client speaks its JSON envelope protocol over a WebSocket:

- On connect it sends ``session.hello`` and ``state.get`` and applies the
  returned snapshot to the session.
- Every inbound ``event`` envelope (state changes, note-on / note-off
  triggers, phase syncs) is handed to :meth:`ViewSession.handle_envelope`.
- :meth:`BridgeClient.execute` sends ``command.execute`` and applies any
  snapshot that comes back with the response.

Bad frames from the backend are logged and skipped; they never reach the
session as errors.
"""

import asyncio
import json
import logging
import typing

import websockets.asyncio.client
import websockets.exceptions

import slotview.constants
import slotview.messages

if typing.TYPE_CHECKING:
	from slotview.session import ViewSession


logger = logging.getLogger(__name__)


class BridgeError (Exception):

	"""A request failed: the backend reported an error, timed out, or the connection is gone."""


class BridgeClient:

	"""Async client that feeds backend events into a :class:`ViewSession`."""

	def __init__ (self, session: "ViewSession", url: str = "ws://127.0.0.1:8765", request_timeout: float = 5.0) -> None:

		self._session = session
		self._url = url
		self._request_timeout = request_timeout
		self._connection: typing.Optional[websockets.asyncio.client.ClientConnection] = None
		self._reader: typing.Optional[asyncio.Task] = None
		self._pending: typing.Dict[str, asyncio.Future] = {}
		self.last_status: typing.Optional[slotview.messages.CommandStatus] = None

	@property
	def connected (self) -> bool:
		return self._connection is not None

	async def connect (self) -> None:

		"""Open the connection, say hello and load the initial state.

		Raises:
			BridgeError: If the handshake is refused.
			OSError: If the backend cannot be reached.
		"""

		self._connection = await websockets.asyncio.client.connect(self._url)
		self._reader = asyncio.create_task(self._read_loop())

		logger.info(f"Bridge connected to {self._url}")

		await self.request(slotview.messages.REQUEST_HELLO, {
			"protocol": slotview.constants.BRIDGE_PROTOCOL,
			"snapshot_schema_version": slotview.constants.SNAPSHOT_SCHEMA_VERSION,
			"frontend_app": slotview.constants.FRONTEND_APP,
			"frontend_version": slotview.constants.FRONTEND_VERSION,
		})

		state = await self.request(slotview.messages.REQUEST_STATE)
		self._apply_snapshot(state.payload)

	async def close (self) -> None:

		"""Close the connection and fail any request still waiting for a response."""

		if self._connection is not None:
			await self._connection.close()
			self._connection = None

		if self._reader is not None:
			self._reader.cancel()
			try:
				await self._reader
			except asyncio.CancelledError:
				pass
			self._reader = None

		self._fail_pending("Bridge closed")

		logger.info("Bridge closed")

	async def request (self, name: str, payload: typing.Optional[typing.Dict[str, typing.Any]] = None) -> slotview.messages.Envelope:

		"""Send a request envelope and wait for its response.

		Raises:
			BridgeError: When not connected, on timeout, or when the response
				carries an ``error`` block.
		"""

		if self._connection is None:
			raise BridgeError(f"Cannot send {name!r}: bridge is not connected")

		envelope = slotview.messages.make_request(name, payload)
		request_id = typing.cast(str, envelope.request_id)

		future: asyncio.Future = asyncio.get_running_loop().create_future()
		self._pending[request_id] = future

		try:
			await self._connection.send(json.dumps(envelope.to_wire()))
			response: slotview.messages.Envelope = await asyncio.wait_for(future, timeout=self._request_timeout)

		except asyncio.TimeoutError:
			raise BridgeError(f"No response to {name!r} within {self._request_timeout}s") from None

		except websockets.exceptions.ConnectionClosed as exc:
			raise BridgeError(f"Connection closed while sending {name!r}") from exc

		finally:
			self._pending.pop(request_id, None)

		error = slotview.messages.payload_error(response.payload)

		if error is not None:
			raise BridgeError(error)

		return response

	async def execute (self, command: str) -> typing.Optional[slotview.messages.CommandStatus]:

		"""Run a textual command on the backend and return its status line, if any."""

		response = await self.request(slotview.messages.REQUEST_COMMAND, {"command": command})

		if "snapshot" in response.payload:
			self._apply_snapshot(response.payload["snapshot"])

		status = slotview.messages.command_status(response.payload)

		if status is not None and status.level != "debug":
			self.last_status = status

		return status

	def _apply_snapshot (self, raw: typing.Any) -> None:

		snapshot = slotview.messages.parse_state_snapshot(raw)

		if snapshot is None:
			logger.debug("Response carried no usable snapshot")
			return

		self._session.apply_state_snapshot(snapshot)

	async def _read_loop (self) -> None:

		"""Dispatch every inbound frame until the connection closes."""

		connection = self._connection

		if connection is None:
			return

		try:
			async for frame in connection:
				self._dispatch(frame)

		except websockets.exceptions.ConnectionClosed:
			logger.info("Bridge connection closed by backend")

		finally:
			if self._connection is connection:
				self._connection = None
			self._fail_pending("Bridge connection lost")

	def _dispatch (self, frame: typing.Union[str, bytes]) -> None:

		try:
			raw = json.loads(frame)
			envelope = slotview.messages.parse_envelope(raw)

		except (json.JSONDecodeError, UnicodeDecodeError, slotview.messages.EnvelopeError) as exc:
			logger.warning(f"Dropping bad bridge frame: {exc}")
			return

		if envelope.type == "response":

			future = self._pending.get(envelope.request_id or "")

			if future is None or future.done():
				logger.debug(f"Unmatched response {envelope.name!r}")
				return

			future.set_result(envelope)
			return

		if envelope.type == "event":
			self._session.handle_envelope(raw)

	def _fail_pending (self, reason: str) -> None:

		for future in self._pending.values():
			if not future.done():
				future.set_exception(BridgeError(reason))

		self._pending.clear()
