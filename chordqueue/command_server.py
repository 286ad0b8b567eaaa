"""TCP command server for submitting requests to a running player.

Start it from ``python -m chordqueue``. The server listens on localhost and
reads one command per line::

	sendchord Cmaj Am(2) F G(2)
	sendloop blues
	stoploop
	settempo 96

Each line gets exactly one reply line: ``ok`` followed by any result, or
``error`` followed by the error's message. Chord progressions and loops are
started in the background, so the reply only says they were queued.

Security note: the server binds to ``localhost`` only and has no
authentication. A chat bot or other front end is expected to sit in front of
it.
"""

import asyncio
import logging
import typing

import chordqueue.errors
import chordqueue.player


logger = logging.getLogger(__name__)

Handler = typing.Callable[[str], str]


class CommandServer:

	"""Async TCP server that relays text commands to a :class:`chordqueue.player.Player`."""

	def __init__ (self, player: chordqueue.player.Player, port: int = 5556) -> None:

		"""Store a reference to the player and the port to listen on."""

		self._player = player
		self._port = port
		self._server: typing.Optional[asyncio.AbstractServer] = None
		self._tasks: typing.Set[asyncio.Task] = set()

		self._handlers: typing.Dict[str, Handler] = {
			"sendchord": self._send_chord,
			"sendloop": self._send_loop,
			"stoploop": self._stop_loop,
			"sendnote": self._send_note,
			"sendcc": self._send_cc,
			"settempo": self._set_tempo,
			"volume": self._set_volume,
			"sync": self._sync,
			"fullstop": self._full_stop,
			"queue": self._queue,
			"playing": self._playing,
			"chordlist": self._chord_list,
			"addchord": self._add_chord,
			"removechord": self._remove_chord,
		}

	@property
	def port (self) -> int:

		"""The port actually bound (useful when started with port 0)."""

		if self._server is None or not self._server.sockets:
			return self._port

		return self._server.sockets[0].getsockname()[1]

	async def start (self) -> None:

		"""Start listening for connections on localhost."""

		self._server = await asyncio.start_server(
			self._handle_connection,
			host = "127.0.0.1",
			port = self._port
		)

		logger.info(f"Command server listening on 127.0.0.1:{self.port}")

	async def stop (self) -> None:

		"""Close the server, cancel queued playback and wait for both to finish."""

		if self._server is not None:
			self._server.close()
			await self._server.wait_closed()
			self._server = None
			logger.info("Command server stopped")

		for task in list(self._tasks):
			task.cancel()

		if self._tasks:
			await asyncio.gather(*self._tasks, return_exceptions=True)


	def dispatch (self, line: str) -> str:

		"""Run one command line and return the reply line."""

		name, _, arguments = line.strip().partition(" ")
		handler = self._handlers.get(name.lower())

		if handler is None:
			return f"error Unknown command: {name}"

		try:
			result = handler(arguments.strip())
		except chordqueue.errors.ChordQueueError as exc:
			logger.info(f"Command {name!r} rejected: {exc}")
			return f"error {exc}"

		return f"ok {result}" if result else "ok"


	async def _handle_connection (self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:

		"""Handle a single client connection, one reply per command line."""

		peer = writer.get_extra_info("peername")
		logger.info(f"Command client connected: {peer}")

		try:

			while True:

				raw = await reader.readline()

				if not raw:
					break

				line = raw.decode("utf-8").strip()

				if not line:
					continue

				writer.write((self.dispatch(line) + "\n").encode("utf-8"))
				await writer.drain()

		except ConnectionResetError:
			logger.info(f"Command client disconnected (reset): {peer}")

		finally:
			writer.close()
			try:
				await writer.wait_closed()
			except ConnectionError:
				pass
			logger.info(f"Command client disconnected: {peer}")

	def _track (self, task: asyncio.Task, request: str) -> None:

		"""Keep a reference to a playback task and log how it ended."""

		self._tasks.add(task)

		def on_done (done: asyncio.Task) -> None:

			self._tasks.discard(done)

			if done.cancelled():
				return

			exc = done.exception()

			if isinstance(exc, chordqueue.errors.PlaybackStopped):
				logger.info(f"Request {request!r} dropped: {exc}")
			elif exc is not None:
				logger.error(f"Request {request!r} failed", exc_info=exc)

		task.add_done_callback(on_done)


	# Handlers

	def _send_chord (self, arguments: str) -> str:
		self._track(self._player.queue_chord(arguments), arguments)
		return "queued"

	def _send_loop (self, arguments: str) -> str:
		self._track(self._player.queue_loop(arguments), arguments)
		return "queued"

	def _stop_loop (self, arguments: str) -> str:
		self._player.stop_loop()
		return ""

	def _send_note (self, arguments: str) -> str:
		notes = self._player.send_note(arguments)
		return " ".join(str(note) for note, _ in notes)

	def _send_cc (self, arguments: str) -> str:
		commands = self._player.send_cc(arguments)
		return ", ".join(f"{controller} {value} {delay}" for controller, value, delay in commands)

	def _set_tempo (self, arguments: str) -> str:
		return str(self._player.set_tempo(arguments))

	def _set_volume (self, arguments: str) -> str:
		return str(self._player.set_volume(arguments))

	def _sync (self, arguments: str) -> str:
		self._player.sync()
		return ""

	def _full_stop (self, arguments: str) -> str:
		self._player.full_stop()
		return ""

	def _queue (self, arguments: str) -> str:
		return " | ".join(f"{request_type}: {request}" for request_type, request in self._player.get_pending_queue())

	def _playing (self, arguments: str) -> str:

		now_playing = self._player.get_currently_playing()

		if now_playing is None:
			return ""

		return f"{now_playing.type}: {now_playing.request}"

	def _chord_list (self, arguments: str) -> str:
		return " | ".join(f"{alias}: {progression}" for alias, progression in self._player.get_chord_list())

	def _add_chord (self, arguments: str) -> str:
		self._player.add_chord_alias(arguments)
		return ""

	def _remove_chord (self, arguments: str) -> str:
		self._player.remove_chord_alias(arguments)
		return ""
