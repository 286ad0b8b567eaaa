"""Playback coordinator.

:class:`Player` is the entry point for everything a caller can ask for. Chord
progressions and loops go through the turn protocol:

1. Resolve the request (alias or literal chords) and parse it, so that a bad
   request fails before it takes a turn.
2. Queue it and wait for its turn at a bar boundary.
3. Play the chords, holding each for its length, with bar-start signals
   suppressed while they sound.
4. Advance the queue.

A loop repeats steps 2-4 on its own turn for as long as it stays the active
loop and nothing is queued behind it. Notes, controller messages, tempo and
volume act immediately.
"""

import asyncio
import logging
import math
import typing

import chordqueue.aliases
import chordqueue.arbiter
import chordqueue.chords
import chordqueue.clock
import chordqueue.config
import chordqueue.constants
import chordqueue.controller
import chordqueue.errors
import chordqueue.event_emitter
import chordqueue.queue_store
import chordqueue.state
import chordqueue.transport


logger = logging.getLogger(__name__)

ALIAS_SEPARATOR = "/"


class Player:

	"""
	Coordinates the clock, queues and MIDI output for one instrument channel.
	"""

	def __init__ (
		self,
		channel: int = chordqueue.constants.DEFAULT_CHANNEL,
		aliases: typing.Optional[chordqueue.aliases.AliasStore] = None,
		initial_tempo: int = chordqueue.constants.DEFAULT_TEMPO,
		initial_volume: int = chordqueue.constants.DEFAULT_VOLUME,
		min_tempo: int = chordqueue.constants.MIN_TEMPO,
		max_tempo: int = chordqueue.constants.MAX_TEMPO,
		spin_wait: bool = True
	) -> None:

		"""Create a player with no output bound.

		Parameters:
			channel: MIDI channel (0-15) for every message.
			aliases: Store for named progressions and controller presets.
				Defaults to an empty in-memory store.
			initial_tempo: Tempo restored by :meth:`initialize`.
			initial_volume: Volume (0-100) restored by :meth:`initialize`.
			min_tempo: Lowest tempo accepted by :meth:`set_tempo`.
			max_tempo: Highest tempo accepted by :meth:`set_tempo`.
			spin_wait: Passed to the clock, see :class:`chordqueue.clock.Clock`.
		"""

		self.channel = channel
		self.aliases = aliases if aliases is not None else chordqueue.aliases.AliasStore()
		self.initial_tempo = initial_tempo
		self.initial_volume = initial_volume
		self.min_tempo = min_tempo
		self.max_tempo = max_tempo

		self.state = chordqueue.state.SchedulerState()
		self.events = chordqueue.event_emitter.EventEmitter()
		self.store = chordqueue.queue_store.QueueStore(self.state)
		self.arbiter = chordqueue.arbiter.TurnArbiter(self.state, self.store, self.events)
		self.clock = chordqueue.clock.Clock(self.state, self.events, channel=channel, spin_wait=spin_wait)
		self.transport: typing.Optional[chordqueue.transport.MidiTransport] = None

		self._init_variables()

	@classmethod
	def from_config (cls, config: chordqueue.config.Config, aliases: typing.Optional[chordqueue.aliases.AliasStore] = None) -> "Player":
		return cls(
			channel = config.channel,
			aliases = aliases,
			initial_tempo = config.initial_tempo,
			initial_volume = config.initial_volume,
			min_tempo = config.min_tempo,
			max_tempo = config.max_tempo,
			spin_wait = config.spin_wait
		)


	# Output lifecycle

	def initialize (self, device_name: typing.Optional[str] = None) -> None:

		"""
		Open a MIDI output and reset the playback variables.

		Raises ``MidiConnectionError`` when no output could be opened.
		"""

		transport = chordqueue.transport.MidiTransport.open(device_name)

		if transport is None:
			raise chordqueue.errors.MidiConnectionError(device_name)

		self._init_variables()
		self.bind(transport)

		logger.info(f"MIDI enabled on {transport.name}")

	def bind (self, transport: typing.Optional[chordqueue.transport.MidiTransport]) -> None:

		"""Attach an already-open transport (or detach with ``None``)."""

		self.transport = transport
		self.clock.bind(transport)

	async def disable (self) -> None:

		"""
		Stop everything and close the MIDI output.

		Raises ``MidiDisconnectionError`` if there is no output or it fails to close.
		"""

		try:
			await self.clock.close()
			self.full_stop()
			self._require_transport().close()
		except Exception as e:
			raise chordqueue.errors.MidiDisconnectionError() from e

		self.bind(None)

		logger.info("MIDI disabled")


	# Queue interface

	def enqueue (self, request_type: str, request: str) -> int:
		return self.store.enqueue(request_type, request)

	async def wait_for_turn (self, turn: int, request_type: str) -> typing.Optional[str]:
		return await self.arbiter.wait_for_turn(turn, request_type)

	def advance (self, request_type: str) -> None:
		self.store.advance(request_type)

	def get_currently_playing (self) -> typing.Optional[chordqueue.state.NowPlaying]:
		return self.state.now_playing

	def get_pending_queue (self) -> typing.List[typing.Tuple[str, str]]:
		return self.store.pending_queue()

	def is_empty (self, request_type: str) -> bool:
		return self.store.is_empty(request_type)

	def clear (self, request_type: str, backup: bool = False) -> None:
		self.store.clear(request_type, backup=backup)

	def clear_all (self, backup: bool = False) -> None:
		self.store.clear_all(backup=backup)

	def clear_many (self, *request_types: str) -> None:
		self.store.clear_many(*request_types)

	def rollback (self, request_type: str) -> None:
		self.store.rollback(request_type)

	def on_now_playing (self, callback: typing.Callable[[str, str], typing.Any]) -> None:

		"""
		Register a callback for now-playing changes.

		The callback receives ``(request_type, request)`` and runs inside the
		clock pulse, so it must not block.
		"""

		self.events.on(chordqueue.constants.NOW_PLAYING_EVENT, callback)


	# Queued playback

	def queue_chord (self, message: str) -> "asyncio.Task[None]":

		"""
		Queue a chord progression (or progression alias) and return the task that plays it.

		Everything that can be checked up front is checked before a turn is
		taken: ``InvalidChord``, ``NotFound``, ``NoOutputBound`` and
		``DuplicateRequest`` are raised here. The task fails with
		``PlaybackStopped`` if a full stop happens while it waits.
		"""

		progression = self._prepare_progression(message)
		self._require_transport()

		turn = self.store.enqueue(chordqueue.constants.PROGRESSION, progression)

		return self._spawn(chordqueue.constants.PROGRESSION, turn, self._run_progression(turn, self.state.generation))

	async def send_chord (self, message: str) -> None:

		"""Queue a chord progression and wait until it has played."""

		await self.queue_chord(message)

	def queue_loop (self, message: str) -> "asyncio.Task[None]":

		"""
		Queue a progression as a loop and return the task that keeps playing it.

		The loop ends when it is stopped, when another loop is queued behind
		it (after the current pass) or on a full stop. While progressions are
		queued it pauses at the bar boundary and resumes once they have played.
		"""

		progression = self._prepare_progression(message)
		self._require_transport()

		turn = self.store.enqueue(chordqueue.constants.LOOP, progression)

		return self._spawn(chordqueue.constants.LOOP, turn, self._run_loop(turn, progression, self.state.generation))

	async def send_loop (self, message: str) -> None:

		"""Queue a loop and wait until it ends."""

		await self.queue_loop(message)

	def stop_loop (self) -> None:

		"""Let the running loop finish its pass and drop any queued loops."""

		self.state.loop_active_id = chordqueue.constants.EMPTY_MESSAGE
		self.store.clear(chordqueue.constants.LOOP)
		self.arbiter.release(chordqueue.constants.LOOP)

		# Nothing queued means nothing playing.
		if self.store.is_empty(chordqueue.constants.PROGRESSION):
			self.state.now_playing = None

		logger.info("Loop stopped")


	# Immediate requests

	def send_note (self, message: str) -> typing.List[typing.Tuple[int, int]]:

		"""
		Play space-separated notes now, each released after its own length.

		Returns the ``(midi_note, length_ms)`` pairs that were sent.
		"""

		transport = self._require_transport()
		notes = chordqueue.chords.parse_notes(message, self.state.tempo)
		loop = asyncio.get_running_loop()

		for note, length_ms in notes:
			transport.note_on(self.channel, note, self.state.volume)
			loop.call_later(length_ms / 1000, transport.note_off, self.channel, note, self.state.volume)

		return notes

	def send_cc (self, message: str) -> typing.List[chordqueue.controller.ControllerCommand]:

		"""
		Send controller commands (or a controller preset alias), expanding sweeps.

		Returns the validated commands as given, without the sweep steps.
		"""

		transport = self._require_transport()

		preset = self.aliases.select(chordqueue.aliases.CC_COMMANDS, message.strip())

		if preset is None:
			commands = chordqueue.controller.split_commands(message)
		elif isinstance(preset, str):
			commands = chordqueue.controller.split_commands(preset)
		else:
			commands = [str(command) for command in preset]

		processed = chordqueue.controller.process_commands(commands)
		loop = asyncio.get_running_loop()

		for controller, value, delay_ms in processed:
			loop.call_later(delay_ms / 1000, transport.control_change, self.channel, controller, value)

		return [chordqueue.controller.validate_controller_message(command) for command in commands]

	def set_tempo (self, message: str) -> int:

		"""
		Restart the clock at the tempo given as the first argument.

		Raises ``NoOutputBound`` without an output and ``InvalidTempo`` for
		anything that is not a whole number within the configured range.
		"""

		self._require_transport()

		arguments = chordqueue.chords.split_arguments(message)

		try:
			tempo = int(arguments[0])
		except (IndexError, ValueError):
			raise chordqueue.errors.InvalidTempo(message)

		if not self.min_tempo <= tempo <= self.max_tempo:
			raise chordqueue.errors.InvalidTempo(message)

		return self.clock.set_tempo(tempo)

	def set_volume (self, message: str) -> int:

		"""
		Set note velocity from a 0-100 volume, returning the volume.

		Raises ``InvalidVolume`` for anything else.
		"""

		arguments = chordqueue.chords.split_arguments(message)

		try:
			value = int(arguments[0])
		except (IndexError, ValueError):
			raise chordqueue.errors.InvalidVolume(message)

		if not 0 <= value <= 100:
			raise chordqueue.errors.InvalidVolume(message)

		self.state.volume = math.floor(value * chordqueue.constants.VOLUME_TO_VELOCITY)

		return value

	def sync (self) -> None:

		"""Bring external instruments back in line with the bar."""

		self.clock.resync()

	def full_stop (self) -> None:

		"""
		Silence everything, stop the clock and forget every queued request.

		Waiting requests fail with ``PlaybackStopped``. Tempo and volume are kept.
		"""

		transport = self._require_transport()

		self.state.loop_active_id = chordqueue.constants.EMPTY_MESSAGE
		self.clock.full_stop()
		transport.stop()
		transport.all_notes_off(self.channel)

		self.arbiter.cancel_all()
		self.state.reset_queues()
		self.state.progression_active = False

		logger.info("Full stop")


	# Aliases

	def get_chord_list (self) -> typing.List[typing.Tuple[str, str]]:
		return self.aliases.items(chordqueue.aliases.CHORD_PROGRESSIONS)

	def add_chord_alias (self, message: str) -> None:

		"""
		Save a progression under an alias, from ``"alias/chords"``.

		The chords are checked first, so an invalid progression raises
		``InvalidChord`` and is not saved.
		"""

		alias, separator, progression = message.partition(ALIAS_SEPARATOR)

		if not separator or not alias.strip() or not progression.strip():
			raise chordqueue.errors.BadInsertion()

		chordqueue.chords.parse_progression(progression, self.state.tempo)

		self.aliases.insert_update(chordqueue.aliases.CHORD_PROGRESSIONS, alias, progression.strip())
		self.aliases.commit()

		logger.info(f"Saved chord alias {alias.strip().lower()!r}")

	def remove_chord_alias (self, message: str) -> None:

		self.aliases.delete(chordqueue.aliases.CHORD_PROGRESSIONS, message)
		self.aliases.commit()

		logger.info(f"Removed chord alias {message.strip().lower()!r}")


	# Internals

	def _init_variables (self) -> None:

		self.state.reset_playback(
			tempo = self.initial_tempo,
			volume = math.floor(self.initial_volume * chordqueue.constants.VOLUME_TO_VELOCITY)
		)

	def _require_transport (self) -> chordqueue.transport.MidiTransport:

		if self.transport is None:
			raise chordqueue.errors.NoOutputBound()

		return self.transport

	def _prepare_progression (self, message: str) -> str:

		"""
		Resolve an alias or literal progression and check that it parses.

		A single word that is neither an alias nor a chord raises ``NotFound``;
		anything else that fails to parse raises ``InvalidChord``.
		"""

		text = message.strip()
		progression = self.aliases.select(chordqueue.aliases.CHORD_PROGRESSIONS, text)

		if progression is not None:
			chordqueue.chords.parse_progression(progression, self.state.tempo)
			return progression

		try:
			chordqueue.chords.parse_progression(text, self.state.tempo)
		except chordqueue.errors.InvalidChord:
			if len(chordqueue.chords.split_arguments(text)) == 1 and text[0] not in chordqueue.chords.NOTE_NAMES:
				raise chordqueue.errors.NotFound(text)
			raise

		return text

	async def _run_progression (self, turn: int, generation: int) -> None:

		self._check_generation(generation)

		request = await self.arbiter.wait_for_turn(turn, chordqueue.constants.PROGRESSION)

		if request is None:
			return

		try:
			await self._play_progression(request)
		finally:
			self._advance_if_current(chordqueue.constants.PROGRESSION, generation)

	async def _run_loop (self, turn: int, progression: str, generation: int) -> None:

		self._check_generation(generation)

		request = await self.arbiter.wait_for_turn(turn, chordqueue.constants.LOOP)

		if request is None:
			return

		self.state.loop_active_id = progression

		while True:

			try:
				await self._play_progression(request)
			finally:
				self._advance_if_current(chordqueue.constants.LOOP, generation)

			if (
				self.state.generation != generation
				or self.state.loop_active_id != progression
				or self.store.current_turn(chordqueue.constants.LOOP) != turn
			):
				break

			request = await self.arbiter.wait_for_turn(turn, chordqueue.constants.LOOP)

			if request is None:
				break

		logger.info(f"Loop finished: {progression}")

	def _spawn (self, request_type: str, turn: int, coroutine: typing.Coroutine[typing.Any, typing.Any, None]) -> "asyncio.Task[None]":

		"""
		Run a queued request as a task.

		If the task is cancelled before its turn has been consumed, the entry
		is replaced by a tombstone so the queue still moves past it.
		"""

		generation = self.state.generation
		task = asyncio.get_running_loop().create_task(coroutine)

		def on_done (done: "asyncio.Task[None]") -> None:
			if done.cancelled() and self.state.generation == generation:
				self.store.cancel(request_type, turn)

		task.add_done_callback(on_done)

		return task

	def _check_generation (self, generation: int) -> None:

		# A full stop happened between queueing and the task starting.
		if self.state.generation != generation:
			raise chordqueue.errors.PlaybackStopped()

	def _advance_if_current (self, request_type: str, generation: int) -> None:

		# Turn ids from before a full stop refer to queues that no longer exist.
		if self.state.generation == generation:
			self.store.advance(request_type)

	async def _play_progression (self, progression: str) -> None:

		"""Play each chord in turn, keeping bar-start signals back until the last one ends."""

		steps = chordqueue.chords.parse_progression(progression, self.state.tempo)

		self.state.progression_active = True

		try:
			for step in steps:
				await self._trigger_notes(step.notes, step.duration_ms)
		finally:
			self.state.progression_active = False

	async def _trigger_notes (self, notes: typing.List[int], duration_ms: int) -> None:

		"""Hold a set of notes for ``duration_ms``; they are always released."""

		transport = self._require_transport()
		velocity = self.state.volume

		for note in notes:
			transport.note_on(self.channel, note, velocity)

		try:
			await asyncio.sleep(duration_ms / 1000)
		finally:
			for note in notes:
				transport.note_off(self.channel, note, velocity)
