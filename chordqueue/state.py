import dataclasses
import typing

import chordqueue.constants


Queue = typing.Dict[int, typing.Optional[str]]


@dataclasses.dataclass
class NowPlaying:

	"""What is currently sounding."""

	type: str
	request: str


def _empty_queues () -> typing.Dict[str, Queue]:
	return {request_type: {} for request_type in chordqueue.constants.ALL_REQUEST_TYPES}


def _initial_ids () -> typing.Dict[str, int]:
	return {request_type: -1 for request_type in chordqueue.constants.ALL_REQUEST_TYPES}


def _initial_cursors () -> typing.Dict[str, int]:
	return {request_type: 0 for request_type in chordqueue.constants.ALL_REQUEST_TYPES}


@dataclasses.dataclass
class SchedulerState:

	"""
	All mutable scheduler state in one place.

	A single instance is created per player and passed by reference to the
	clock, queue store, arbiter and coordinator. Nothing keeps its own copy.

	Queue state:
		queues: Live entries per request type, keyed by turn id. A ``None``
			value is a tombstone.
		backups: Snapshot taken by the last backup-requested clear.
		last_ids: Highest turn id handed out per type (``-1`` before the first).
		cursors: Turn id currently eligible to play per type.
		now_playing: The single now-playing record, if any.
		generation: Bumped by every reset, so work started before a reset can
			tell that its turn ids no longer mean anything.

	Clock state:
		tempo: Beats per minute.
		tick: Position within the bar, ``0 <= tick < PULSES_PER_BAR``.
		progression_active: Set while a chord sequence is sounding; suppresses
			bar-start signals.

	Coordinator state:
		loop_active_id: Identity token of the running loop, or the empty marker.
		volume: MIDI velocity used for note-on messages.
	"""

	queues: typing.Dict[str, Queue] = dataclasses.field(default_factory=_empty_queues)
	backups: typing.Dict[str, Queue] = dataclasses.field(default_factory=_empty_queues)
	last_ids: typing.Dict[str, int] = dataclasses.field(default_factory=_initial_ids)
	cursors: typing.Dict[str, int] = dataclasses.field(default_factory=_initial_cursors)
	now_playing: typing.Optional[NowPlaying] = None
	generation: int = 0

	tempo: int = chordqueue.constants.DEFAULT_TEMPO
	tick: int = 0
	progression_active: bool = False

	loop_active_id: str = chordqueue.constants.EMPTY_MESSAGE
	volume: int = int(chordqueue.constants.DEFAULT_VOLUME * chordqueue.constants.VOLUME_TO_VELOCITY)


	def reset_queues (self) -> None:

		"""Return every queue, backup, turn counter and cursor to its initial value."""

		self.queues = _empty_queues()
		self.backups = _empty_queues()
		self.last_ids = _initial_ids()
		self.cursors = _initial_cursors()
		self.now_playing = None
		self.generation += 1


	def reset_playback (self, tempo: int, volume: int) -> None:

		"""Return the clock and coordinator variables to their initial values."""

		self.tempo = tempo
		self.tick = 0
		self.progression_active = False
		self.loop_active_id = chordqueue.constants.EMPTY_MESSAGE
		self.volume = volume
