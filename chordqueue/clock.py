"""Bar-synchronised MIDI clock.

The clock sends MIDI timing pulses at 24 ppqn and keeps track of the
position within a 96-pulse (4/4) bar. At the top of every bar it emits a
``bar_start`` event, unless a chord sequence is sounding, in which case the
signal is held back so that playback cannot be re-triggered mid-sequence.

Tick interval formula::

	1_000_000_000 ns/s * 60 s/min / (BPM * 24 ppqn)
"""

import asyncio
import logging
import time
import typing

import chordqueue.constants
import chordqueue.errors
import chordqueue.event_emitter
import chordqueue.state
import chordqueue.transport


logger = logging.getLogger(__name__)


def calculate_clock_tick_time_ns (tempo: int) -> int:

	"""
	Nanoseconds between two clock pulses at the given tempo, rounded down.

	Example:
		```python
		calculate_clock_tick_time_ns(120)  # → 20_833_333
		calculate_clock_tick_time_ns(60)   # → 41_666_666
		```
	"""

	return chordqueue.constants.NANOSECONDS_PER_MINUTE // (tempo * chordqueue.constants.MIDI_QUARTER_NOTE)


class Clock:

	"""
	Periodic pulse generator driving MIDI clock output and bar-start signals.

	The pulse handler never blocks: bar-start listeners run synchronously and
	must only inspect or update shared state. Anything that waits belongs in
	the coroutines those listeners wake up.
	"""

	def __init__ (
		self,
		state: chordqueue.state.SchedulerState,
		events: chordqueue.event_emitter.EventEmitter,
		channel: int = chordqueue.constants.DEFAULT_CHANNEL,
		spin_wait: bool = True
	) -> None:

		"""Initialize a stopped clock.

		Parameters:
			state: Shared scheduler state holding tempo, tick and the
				progression-suppression flag.
			events: Emitter that receives ``bar_start`` signals.
			channel: MIDI channel used for all-notes-off on resync.
			spin_wait: When True, sleep to within a millisecond of each pulse
				and busy-wait for the rest, trading a little CPU for much lower
				jitter than ``asyncio.sleep()`` alone.
		"""

		self.state = state
		self.events = events
		self.channel = channel
		self.transport: typing.Optional[chordqueue.transport.MidiTransport] = None

		self.task: typing.Optional[asyncio.Task] = None
		self.running = False
		self.tick_interval_ns = calculate_clock_tick_time_ns(state.tempo)
		self.seconds_per_pulse = self.tick_interval_ns / 1_000_000_000

		self._spin_wait = spin_wait
		self._spin_threshold = 0.001


	def bind (self, transport: typing.Optional[chordqueue.transport.MidiTransport]) -> None:

		"""Attach (or detach, with ``None``) the output the clock drives."""

		self.transport = transport


	def set_tempo (self, bpm: int) -> int:

		"""
		Restart the clock at a new tempo, returning the effective BPM.

		The output is re-synchronised (stop, all notes off, start), the first
		pulse is sent immediately and the following pulses are scheduled at
		the new interval.
		"""

		transport = self._require_transport()

		if bpm <= 0:
			raise chordqueue.errors.InvalidTempo(str(bpm))

		loop = asyncio.get_running_loop()

		self._cancel_task()

		self.state.tempo = bpm
		self.tick_interval_ns = calculate_clock_tick_time_ns(bpm)
		self.seconds_per_pulse = self.tick_interval_ns / 1_000_000_000

		self._resync(transport)
		self.pulse()

		self.running = True
		self.task = loop.create_task(self._run_loop())

		logger.info(f"Tempo set to {bpm} BPM ({self.tick_interval_ns} ns per pulse)")

		return bpm

	def resync (self) -> None:

		"""Return to the top of the bar and restart the output without rescheduling."""

		self._resync(self._require_transport())

		logger.info("Clock resynchronised")

	def full_stop (self) -> None:

		"""Cancel the pulse schedule and return to the top of the bar. Tempo is kept."""

		self._cancel_task()
		self.state.tick = 0

		logger.info("Clock stopped")

	async def close (self) -> None:

		"""Stop the clock and wait for its task to finish."""

		task = self.task
		self.full_stop()

		if task is not None:
			try:
				await task
			except asyncio.CancelledError:
				pass


	def pulse (self) -> None:

		"""
		Handle one clock pulse.

		Emits ``bar_start`` when at the top of the bar and no chord sequence is
		sounding, then sends the MIDI clock message and advances the tick.
		"""

		transport = self._require_transport()

		if self.state.tick == 0 and not self.state.progression_active:
			try:
				self.events.emit_sync(chordqueue.constants.BAR_START_EVENT)
			except Exception:
				logger.exception("Bar start listener failed")

		transport.clock()
		self.state.tick = (self.state.tick + 1) % chordqueue.constants.PULSES_PER_BAR


	async def _run_loop (self) -> None:

		"""Pulse loop driven by the wall clock.

		Late pulses are caught up in order rather than dropped, so the bar
		position never slips against the output.
		"""

		next_pulse_time = time.perf_counter() + self.seconds_per_pulse

		while self.running:

			sleep_time = next_pulse_time - time.perf_counter()

			if sleep_time > 0:
				if self._spin_wait and sleep_time > self._spin_threshold:
					await asyncio.sleep(sleep_time - self._spin_threshold)
					while time.perf_counter() < next_pulse_time:
						pass
				else:
					await asyncio.sleep(sleep_time)

			while self.running and time.perf_counter() >= next_pulse_time:
				self.pulse()
				next_pulse_time += self.seconds_per_pulse


	def _resync (self, transport: chordqueue.transport.MidiTransport) -> None:

		self.state.tick = 0
		transport.stop()
		transport.all_notes_off(self.channel)
		transport.start()

	def _cancel_task (self) -> None:

		self.running = False

		if self.task is not None and not self.task.done():
			self.task.cancel()

		self.task = None

	def _require_transport (self) -> chordqueue.transport.MidiTransport:

		if self.transport is None:
			raise chordqueue.errors.NoOutputBound()

		return self.transport
