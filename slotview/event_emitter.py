import asyncio
import inspect
import logging
import typing


logger = logging.getLogger(__name__)


Listener = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Publishes derived display values to the rendering layer.

	The session emits from inside message handlers and frame ticks, so
	emission is synchronous.  Async listeners are scheduled on the running
	loop instead of awaited, which keeps a slow renderer from holding up the
	next correction or frame.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[Listener]] = {}
		self._pending: typing.Set[asyncio.Task] = set()


	def on (self, event_name: str, listener: Listener) -> None:

		"""
		Register a listener for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(listener)

	def off (self, event_name: str, listener: Listener) -> None:

		"""
		Unregister a previously registered listener.

		Raises ``ValueError`` if the listener is not registered for the event.
		"""

		if listener not in self._listeners.get(event_name, []):
			raise ValueError(f"Listener not registered for event {event_name!r}")

		self._listeners[event_name].remove(listener)


	def listener_count (self, event_name: str) -> int:
		return len(self._listeners.get(event_name, []))


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener for ``event_name`` in registration order.

		A failing listener is logged and does not stop the others.
		"""

		for listener in list(self._listeners.get(event_name, [])):

			try:
				if inspect.iscoroutinefunction(listener):
					task = asyncio.get_running_loop().create_task(listener(*args, **kwargs))
					self._pending.add(task)
					task.add_done_callback(self._pending.discard)
				else:
					listener(*args, **kwargs)

			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")
