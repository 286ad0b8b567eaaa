"""Turn arbitration at bar boundaries.

Callers wait for their turn with :meth:`TurnArbiter.wait_for_turn`. Each call
subscribes one listener to the ``bar_start`` signal; at every bar start the
listener checks whether its turn is the current one and whether its request
type can play without colliding with the other type. Progressions always win:
a loop never starts, or carries on, while any progression is queued.

The listener unsubscribes itself in the same step that resolves the waiter,
so a waiter is resolved exactly once and never lingers on later bars.
"""

import asyncio
import logging
import typing

import chordqueue.constants
import chordqueue.errors
import chordqueue.event_emitter
import chordqueue.queue_store
import chordqueue.state


logger = logging.getLogger(__name__)


class TurnArbiter:

	"""
	Decides at each bar start which waiting request may begin.
	"""

	def __init__ (
		self,
		state: chordqueue.state.SchedulerState,
		store: chordqueue.queue_store.QueueStore,
		events: chordqueue.event_emitter.EventEmitter
	) -> None:

		self.state = state
		self.store = store
		self.events = events
		self._waiters: typing.Dict[typing.Callable[[], None], typing.Tuple[str, asyncio.Future]] = {}

		# Registered before any waiter so dead turns are skipped first on every bar.
		self.events.on(chordqueue.constants.BAR_START_EVENT, self._skip_dead_turns)


	def is_collision_free (self, request_type: str) -> bool:

		"""
		True when a request of this type can start without overlapping the other type.

		The type's own queue must hold something, and loops additionally wait
		until no progression is queued.
		"""

		return not self.store.is_empty(request_type) and (
			request_type != chordqueue.constants.LOOP or self.store.is_empty(chordqueue.constants.PROGRESSION)
		)

	def is_my_turn (self, turn: int, request_type: str) -> bool:
		return turn == self.store.current_turn(request_type)

	@property
	def waiting (self) -> int:
		return len(self._waiters)


	async def wait_for_turn (self, turn: int, request_type: str) -> typing.Optional[str]:

		"""
		Suspend until a bar starts on which this turn may play.

		Returns the queued request for the turn. Returns ``None`` when the turn
		came up but its entry had been cleared or cancelled: the turn is then
		consumed here and the caller has nothing to play or advance.

		Raises ``PlaybackStopped`` if :meth:`cancel_all` is called first.
		"""

		future: asyncio.Future = asyncio.get_running_loop().create_future()

		def on_bar_start () -> None:

			if future.done():
				self._detach(on_bar_start)
				return

			if turn < self.store.current_turn(request_type):
				logger.debug(f"{request_type} turn {turn} was skipped while waiting")
				self._detach(on_bar_start)
				future.set_result(None)
				return

			if not (self.is_my_turn(turn, request_type) and self.is_collision_free(request_type)):
				return

			self._detach(on_bar_start)

			request = self.store.entry(request_type, turn)

			if request is None:
				logger.debug(f"Skipping cleared {request_type} turn {turn}")
				self.store.advance(request_type)
				future.set_result(None)
				return

			logger.debug(f"Resolved {request_type} turn {turn}: {request!r}")
			future.set_result(request)
			self._set_now_playing(request_type, request)

		self._waiters[on_bar_start] = (request_type, future)
		self.events.on(chordqueue.constants.BAR_START_EVENT, on_bar_start)

		try:
			return await future
		finally:
			# Caller cancelled while waiting.
			if on_bar_start in self._waiters:
				self._detach(on_bar_start)

	def cancel_all (self) -> None:

		"""Fail every pending waiter with ``PlaybackStopped``."""

		waiters = list(self._waiters.items())

		for listener, (_, future) in waiters:
			self._detach(listener)

			if not future.done():
				future.set_exception(chordqueue.errors.PlaybackStopped())

		if waiters:
			logger.info(f"Cancelled {len(waiters)} waiting requests")

	def release (self, request_type: str) -> None:

		"""
		Resolve every waiter of one type with ``None`` without playing anything.

		Used when a type's queue is dropped for good, so that its callers return
		instead of waiting for turns that will never come round.
		"""

		for listener, (waiting_type, future) in list(self._waiters.items()):

			if waiting_type != request_type:
				continue

			self._detach(listener)

			if not future.done():
				future.set_result(None)


	def _detach (self, listener: typing.Callable[[], None]) -> None:

		self._waiters.pop(listener, None)
		self.events.off(chordqueue.constants.BAR_START_EVENT, listener)

	def _skip_dead_turns (self) -> None:

		"""Consume turns at the cursor that can no longer play."""

		for request_type in chordqueue.constants.QUEUED_REQUEST_TYPES:
			while self._is_dead_turn(request_type):
				self.store.advance(request_type)

	def _is_dead_turn (self, request_type: str) -> bool:

		"""
		A turn is dead when its entry is a tombstone, or when it was cleared
		away and a later request is already queued.
		"""

		queue = self.state.queues[request_type]
		cursor = self.store.current_turn(request_type)

		if cursor in queue:
			return queue[cursor] is None

		return any(request is not None for turn, request in queue.items() if turn > cursor)

	def _set_now_playing (self, request_type: str, request: str) -> None:

		"""Replace the now-playing record and notify observers, unless nothing changed."""

		current = self.state.now_playing

		if request == chordqueue.constants.EMPTY_MESSAGE or (
			current is not None and current.type == request_type and current.request == request
		):
			return

		self.state.now_playing = chordqueue.state.NowPlaying(type=request_type, request=request)

		logger.info(f"Now playing {request_type}: {request}")

		self.events.emit_sync(chordqueue.constants.NOW_PLAYING_EVENT, request_type, request)
