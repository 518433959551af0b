"""Cancellable per-frame callback driver.

The playhead integrator needs a steady callback at display cadence.  A
:class:`FrameClock` is an explicit handle around an asyncio task: whoever
owns it calls :meth:`FrameClock.start` and must call :meth:`FrameClock.stop`
when the owning context goes away, so that two integrators never run at the
same time.
"""

import asyncio
import logging
import typing


logger = logging.getLogger(__name__)


FrameCallback = typing.Callable[[float], typing.Any]


class FrameClock:

	"""Calls ``callback(dt_seconds)`` roughly ``frame_rate`` times a second.

	The first frame after :meth:`start` always reports ``dt = 0`` so that a
	restart never replays the time the clock spent stopped.
	"""

	def __init__ (self, callback: FrameCallback, frame_rate: float = 60.0) -> None:

		"""Store the callback and frame interval.

		Parameters:
			callback: Called once per frame with the elapsed seconds since the
				previous frame.
			frame_rate: Target frames per second.
		"""

		if frame_rate <= 0:
			raise ValueError("frame_rate must be positive")

		self._callback = callback
		self._interval = 1.0 / frame_rate
		self._task: typing.Optional[asyncio.Task] = None
		self._last_frame_time: typing.Optional[float] = None
		self.frame_count = 0

	@property
	def running (self) -> bool:
		return self._task is not None and not self._task.done()

	def start (self) -> None:

		"""Begin delivering frames.  Must be called from inside a running event loop."""

		if self.running:
			return

		self._last_frame_time = None
		self._task = asyncio.get_running_loop().create_task(self._run())

	def stop (self) -> None:

		"""Cancel the pending frame.  Safe to call when already stopped."""

		if self._task is not None:
			self._task.cancel()
			self._task = None

		self._last_frame_time = None

	async def _run (self) -> None:

		"""Frame loop: measure elapsed time, call back, sleep until the next frame."""

		loop = asyncio.get_running_loop()

		while True:

			now = loop.time()

			if self._last_frame_time is None:
				dt = 0.0
			else:
				dt = max(0.0, now - self._last_frame_time)

			self._last_frame_time = now
			self.frame_count += 1

			try:
				self._callback(dt)
			except Exception:
				logger.exception("Frame callback failed")

			await asyncio.sleep(self._interval)
