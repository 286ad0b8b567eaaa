import asyncio
import typing

import pytest

import chordqueue.aliases
import chordqueue.constants
import chordqueue.errors
import chordqueue.player
import chordqueue.state

from chordqueue.constants import BAR_START_EVENT, LOOP, PROGRESSION


def _bar (player: chordqueue.player.Player) -> None:

	"""Deliver one top-of-bar pulse."""

	player.state.tick = 0
	player.clock.pulse()


def _notes_on (midi_out) -> typing.List[int]:
	return [message.note for message in midi_out.of_type('note_on')]


async def _stop_and_collect (player: chordqueue.player.Player, *tasks: asyncio.Task) -> None:

	"""Full stop, then let waiting tasks fail with PlaybackStopped."""

	player.full_stop()

	for task in tasks:
		with pytest.raises(chordqueue.errors.PlaybackStopped):
			await task


@pytest.mark.asyncio
async def test_progression_plays_at_bar_start (player: chordqueue.player.Player, midi_out) -> None:

	"""A queued progression waits for the bar, plays every chord, then clears now-playing."""

	seen: typing.List[typing.Tuple[str, str]] = []
	player.on_now_playing(lambda request_type, request: seen.append((request_type, request)))

	task = player.queue_chord("Cmaj Gmaj")
	await asyncio.sleep(0.01)

	assert not task.done()
	assert midi_out.of_type('note_on') == []
	assert player.get_pending_queue() == [(PROGRESSION, "Cmaj Gmaj")]

	_bar(player)

	assert player.get_currently_playing() == chordqueue.state.NowPlaying(type=PROGRESSION, request="Cmaj Gmaj")

	await task

	assert _notes_on(midi_out) == [60, 64, 67, 67, 71, 74]
	assert sorted(message.note for message in midi_out.of_type('note_off')) == [60, 64, 67, 67, 71, 74]
	assert all(message.velocity == 127 for message in midi_out.of_type('note_on'))
	assert player.get_currently_playing() is None
	assert player.get_pending_queue() == []
	assert player.state.progression_active is False
	assert seen == [(PROGRESSION, "Cmaj Gmaj")]


@pytest.mark.asyncio
async def test_send_chord_waits_until_played (player: chordqueue.player.Player, midi_out) -> None:

	"""send_chord returns once the progression has finished."""

	task = asyncio.get_running_loop().create_task(player.send_chord("Am"))
	await asyncio.sleep(0.01)

	_bar(player)
	await task

	assert _notes_on(midi_out) == [69, 72, 76]


@pytest.mark.asyncio
async def test_bar_start_is_suppressed_while_a_progression_sounds (player: chordqueue.player.Player) -> None:

	"""The next progression cannot start until the current one ends."""

	bars: typing.List[int] = []
	player.events.on(BAR_START_EVENT, lambda: bars.append(player.state.tick))

	first = player.queue_chord("Cmaj(40)")
	second = player.queue_chord("Am")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.005)

	assert player.state.progression_active is True

	_bar(player)
	await asyncio.sleep(0)

	assert len(bars) == 1
	assert not second.done()

	await first
	_bar(player)
	await second

	assert len(bars) == 2


@pytest.mark.asyncio
async def test_progressions_play_in_queue_order (player: chordqueue.player.Player, midi_out) -> None:

	"""Each queued progression takes its own bar, in the order queued."""

	tasks = [player.queue_chord(chords) for chords in ("Cmaj", "Fmaj", "Gmaj")]
	await asyncio.sleep(0)

	for task in tasks:
		_bar(player)
		await task

	assert _notes_on(midi_out) == [60, 64, 67, 65, 69, 72, 67, 71, 74]


@pytest.mark.asyncio
async def test_lone_loop_repeats_every_bar (player: chordqueue.player.Player, midi_out) -> None:

	"""A loop with nothing behind it keeps its turn and replays until stopped."""

	task = player.queue_loop("Am Fmaj")
	await asyncio.sleep(0)

	for _ in range(3):
		_bar(player)
		await asyncio.sleep(0.03)

	assert _notes_on(midi_out).count(76) == 3
	assert _notes_on(midi_out).count(65) == 3
	assert player.state.loop_active_id == "Am Fmaj"
	assert player.store.current_turn(LOOP) == 0
	assert player.get_currently_playing() == chordqueue.state.NowPlaying(type=LOOP, request="Am Fmaj")

	player.stop_loop()
	await task

	assert player.state.loop_active_id == chordqueue.constants.EMPTY_MESSAGE
	assert player.is_empty(LOOP)
	assert player.get_currently_playing() is None


@pytest.mark.asyncio
async def test_stop_loop_lets_the_current_pass_finish (player: chordqueue.player.Player, midi_out) -> None:

	"""Stopping mid-pass releases every held note and ends the loop."""

	task = player.queue_loop("Am(40)")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.005)

	player.stop_loop()

	assert not task.done()

	await task

	assert sorted(message.note for message in midi_out.of_type('note_off')) == [69, 72, 76]

	_bar(player)
	await asyncio.sleep(0.01)

	assert _notes_on(midi_out) == [69, 72, 76]


@pytest.mark.asyncio
async def test_progression_pauses_loop (player: chordqueue.player.Player, midi_out) -> None:

	"""A queued progression takes the next bar and the loop resumes after it."""

	loop_task = player.queue_loop("Am")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.02)

	chord_task = player.queue_chord("Cmaj")
	await asyncio.sleep(0)

	_bar(player)
	await chord_task

	_bar(player)
	await asyncio.sleep(0.02)

	assert _notes_on(midi_out) == [69, 72, 76, 60, 64, 67, 69, 72, 76]

	player.stop_loop()
	await loop_task


@pytest.mark.asyncio
async def test_new_loop_takes_over_after_the_current_pass (player: chordqueue.player.Player, midi_out) -> None:

	"""Queuing a loop behind a lone loop ends the first one after its next pass."""

	first = player.queue_loop("Am")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.02)

	second = player.queue_loop("Dm")
	await asyncio.sleep(0)

	_bar(player)
	await first

	assert player.store.current_turn(LOOP) == 1

	_bar(player)
	await asyncio.sleep(0.02)

	assert player.state.loop_active_id == "Dm"
	assert _notes_on(midi_out) == [69, 72, 76, 69, 72, 76, 62, 65, 69]

	player.stop_loop()
	await second


@pytest.mark.asyncio
async def test_invalid_chord_is_rejected_before_queueing (player: chordqueue.player.Player) -> None:

	"""A bad chord never takes a turn."""

	with pytest.raises(chordqueue.errors.InvalidChord):
		player.queue_chord("Cmaj Hmaj")

	with pytest.raises(chordqueue.errors.InvalidChord):
		player.queue_loop("Cxyz")

	assert player.is_empty(PROGRESSION)
	assert player.is_empty(LOOP)
	assert player.state.last_ids[PROGRESSION] == -1


@pytest.mark.asyncio
async def test_unknown_alias_is_not_found (player: chordqueue.player.Player) -> None:

	"""A single word that is neither an alias nor a chord is reported as a missing alias."""

	with pytest.raises(chordqueue.errors.NotFound):
		player.queue_chord("nosuchalias")

	assert player.is_empty(PROGRESSION)


@pytest.mark.asyncio
async def test_alias_resolves_to_progression (player: chordqueue.player.Player) -> None:

	"""Aliases are looked up case-insensitively and queued as their chords."""

	player.aliases.insert_update(chordqueue.aliases.CHORD_PROGRESSIONS, "pop", "Cmaj Gmaj")

	task = player.queue_chord("POP")

	assert player.get_pending_queue() == [(PROGRESSION, "Cmaj Gmaj")]

	await _stop_and_collect(player, task)


@pytest.mark.asyncio
async def test_duplicate_request_is_rejected (player: chordqueue.player.Player) -> None:

	"""The same progression cannot be queued twice in a row."""

	task = player.queue_chord("Cmaj")

	with pytest.raises(chordqueue.errors.DuplicateRequest):
		player.queue_chord("Cmaj")

	await _stop_and_collect(player, task)


@pytest.mark.asyncio
async def test_queue_without_output () -> None:

	"""Nothing is queued when there is no output to play on."""

	player = chordqueue.player.Player(spin_wait=False)

	with pytest.raises(chordqueue.errors.NoOutputBound):
		player.queue_chord("Cmaj")

	assert player.is_empty(PROGRESSION)


@pytest.mark.asyncio
async def test_cancelled_request_leaves_a_tombstone (player: chordqueue.player.Player, midi_out) -> None:

	"""A caller that gives up does not hold up the requests behind it."""

	first = player.queue_chord("Cmaj")
	second = player.queue_chord("Am")
	await asyncio.sleep(0)

	first.cancel()

	with pytest.raises(asyncio.CancelledError):
		await first

	assert player.store.has_turn(PROGRESSION, 0)
	assert player.store.entry(PROGRESSION, 0) is None
	assert player.get_pending_queue() == [(PROGRESSION, "Am")]

	_bar(player)
	await second

	assert _notes_on(midi_out) == [69, 72, 76]


@pytest.mark.asyncio
async def test_full_stop_fails_waiters_and_resets (player: chordqueue.player.Player, midi_out) -> None:

	"""Everything waiting fails, queues restart from turn 0, tempo and volume survive."""

	player.set_volume("50")
	tasks = [player.queue_chord("Cmaj"), player.queue_loop("Am")]
	await asyncio.sleep(0)

	await _stop_and_collect(player, *tasks)

	assert player.get_pending_queue() == []
	assert player.get_currently_playing() is None
	assert player.state.last_ids[PROGRESSION] == -1
	assert player.state.cursors[LOOP] == 0
	assert player.state.volume == 63
	assert player.state.tempo == 60000
	assert player.arbiter.waiting == 0
	assert [message.type for message in midi_out.messages] == ['stop', 'control_change', 'control_change']


@pytest.mark.asyncio
async def test_playback_from_before_full_stop_does_not_advance_new_queue (player: chordqueue.player.Player) -> None:

	"""A progression still sounding at a full stop leaves the fresh queue alone."""

	old = player.queue_chord("Cmaj(40)")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.005)

	player.full_stop()
	fresh = player.queue_chord("Am")

	await old

	assert player.store.current_turn(PROGRESSION) == 0
	assert player.get_pending_queue() == [(PROGRESSION, "Am")]

	await _stop_and_collect(player, fresh)


@pytest.mark.asyncio
async def test_full_stop_without_output () -> None:

	"""full_stop needs an output."""

	player = chordqueue.player.Player(spin_wait=False)

	with pytest.raises(chordqueue.errors.NoOutputBound):
		player.full_stop()


def test_set_volume (player: chordqueue.player.Player) -> None:

	"""Volume 0-100 maps onto MIDI velocity."""

	assert player.set_volume("50") == 50
	assert player.state.volume == 63

	assert player.set_volume("100") == 100
	assert player.state.volume == 127

	assert player.set_volume("0") == 0
	assert player.state.volume == 0


@pytest.mark.parametrize("message", ["101", "-1", "loud", "", "5.5"])
def test_set_volume_rejects_bad_values (player: chordqueue.player.Player, message: str) -> None:

	"""Anything but a whole number from 0 to 100 is refused."""

	with pytest.raises(chordqueue.errors.InvalidVolume):
		player.set_volume(message)

	assert player.state.volume == 127


@pytest.mark.asyncio
async def test_set_tempo_restarts_clock (player: chordqueue.player.Player, midi_out) -> None:

	"""A valid tempo restarts the clock at the new rate."""

	assert player.set_tempo("90") == 90
	assert player.state.tempo == 90
	assert player.clock.task is not None
	assert len(midi_out.of_type('clock')) >= 1

	await player.clock.close()


@pytest.mark.parametrize("message", ["20", "401", "fast", ""])
def test_set_tempo_rejects_bad_values (player: chordqueue.player.Player, message: str) -> None:

	"""Out-of-range and non-numeric tempos are refused and nothing changes."""

	with pytest.raises(chordqueue.errors.InvalidTempo):
		player.set_tempo(message)

	assert player.state.tempo == 60000
	assert player.clock.task is None


def test_set_tempo_without_output () -> None:

	"""Tempo changes need an output."""

	player = chordqueue.player.Player(spin_wait=False)

	with pytest.raises(chordqueue.errors.NoOutputBound):
		player.set_tempo("100")


def test_sync_restarts_output (player: chordqueue.player.Player, midi_out) -> None:

	"""sync returns to the top of the bar."""

	player.state.tick = 33
	player.sync()

	assert player.state.tick == 0
	assert [message.type for message in midi_out.messages] == ['stop', 'control_change', 'control_change', 'start']


@pytest.mark.asyncio
async def test_send_note (player: chordqueue.player.Player, midi_out) -> None:

	"""Notes sound immediately and are released after their own lengths."""

	assert player.send_note("C4 E4(2)") == [(60, 1), (64, 2)]
	assert _notes_on(midi_out) == [60, 64]
	assert midi_out.of_type('note_off') == []

	await asyncio.sleep(0.02)

	assert [message.note for message in midi_out.of_type('note_off')] == [60, 64]


@pytest.mark.asyncio
async def test_send_note_rejects_bad_note (player: chordqueue.player.Player, midi_out) -> None:

	"""Nothing is sent when any note is invalid."""

	with pytest.raises(chordqueue.errors.InvalidNote):
		player.send_note("C4 Q4")

	assert midi_out.messages == []


@pytest.mark.asyncio
async def test_send_cc_sweeps (player: chordqueue.player.Player, midi_out) -> None:

	"""Commands on one controller at different times are joined by a sweep."""

	assert player.send_cc("74 0, 74 127 10") == [(74, 0, 0), (74, 127, 10)]

	await asyncio.sleep(0.05)

	messages = midi_out.of_type('control_change')
	values = {message.value for message in messages}

	assert len(messages) > 2
	assert all(message.control == 74 for message in messages)
	assert 0 in values and 127 in values


@pytest.mark.asyncio
async def test_send_cc_preset (player: chordqueue.player.Player, midi_out) -> None:

	"""A controller preset alias expands to its stored commands."""

	player.aliases.insert_update(chordqueue.aliases.CC_COMMANDS, "accent", ["7 100", "10 64"])

	assert player.send_cc("Accent") == [(7, 100, 0), (10, 64, 0)]

	await asyncio.sleep(0.01)

	assert [(message.control, message.value) for message in midi_out.of_type('control_change')] == [(7, 100), (10, 64)]


@pytest.mark.asyncio
async def test_send_cc_errors (player: chordqueue.player.Player) -> None:

	"""Bad and empty controller messages are refused."""

	with pytest.raises(chordqueue.errors.InvalidController):
		player.send_cc("74 300")

	with pytest.raises(chordqueue.errors.BadControllerMessage):
		player.send_cc(" , ")


def test_initialize_opens_output (patch_midi) -> None:

	"""initialize opens the only available output and resets playback variables."""

	player = chordqueue.player.Player(initial_tempo=100, initial_volume=50, spin_wait=False)
	player.state.tick = 17

	player.initialize()

	assert player.transport is not None
	assert player.transport.name == "Dummy MIDI"
	assert player.clock.transport is player.transport
	assert player.state.tempo == 100
	assert player.state.volume == 63
	assert player.state.tick == 0


def test_initialize_unknown_device (patch_midi) -> None:

	"""A device that does not exist cannot be connected."""

	player = chordqueue.player.Player(spin_wait=False)

	with pytest.raises(chordqueue.errors.MidiConnectionError):
		player.initialize("Nonexistent Synth")

	assert player.transport is None


@pytest.mark.asyncio
async def test_disable_closes_output (player: chordqueue.player.Player, midi_out) -> None:

	"""disable stops playback and closes the port."""

	await player.disable()

	assert midi_out.closed is True
	assert player.transport is None
	assert player.clock.transport is None

	with pytest.raises(chordqueue.errors.MidiDisconnectionError):
		await player.disable()


def test_chord_aliases (player: chordqueue.player.Player) -> None:

	"""Aliases are saved after their chords are checked, and can be removed."""

	player.add_chord_alias("Pop/C G Am F")

	assert player.get_chord_list() == [("pop", "C G Am F")]

	with pytest.raises(chordqueue.errors.BadInsertion):
		player.add_chord_alias("no separator")

	with pytest.raises(chordqueue.errors.InvalidChord):
		player.add_chord_alias("broken/Cmaj Hmaj")

	assert player.get_chord_list() == [("pop", "C G Am F")]

	player.remove_chord_alias("POP")

	assert player.get_chord_list() == []

	with pytest.raises(chordqueue.errors.NotFound):
		player.remove_chord_alias("pop")


@pytest.mark.asyncio
async def test_stop_loop_between_passes_clears_now_playing (player: chordqueue.player.Player) -> None:

	"""A loop stopped while waiting for its next bar is no longer reported as playing."""

	task = player.queue_loop("Am")
	await asyncio.sleep(0)

	_bar(player)
	await asyncio.sleep(0.02)

	assert player.get_currently_playing() == chordqueue.state.NowPlaying(type=LOOP, request="Am")

	player.stop_loop()
	await task

	assert player.is_empty(LOOP)
	assert player.get_currently_playing() is None


@pytest.mark.asyncio
async def test_stop_loop_keeps_queued_progression_playing (player: chordqueue.player.Player) -> None:

	"""Stopping the loop leaves the record alone while a progression is still queued."""

	player.state.now_playing = chordqueue.state.NowPlaying(type=PROGRESSION, request="Cmaj")
	task = player.queue_chord("Cmaj")

	player.stop_loop()

	assert player.get_currently_playing() == chordqueue.state.NowPlaying(type=PROGRESSION, request="Cmaj")

	await _stop_and_collect(player, task)


@pytest.mark.asyncio
async def test_disable_waits_for_the_clock_task (player: chordqueue.player.Player) -> None:

	"""The pulse task has finished by the time disable returns."""

	player.set_tempo("120")
	task = player.clock.task

	await player.disable()

	assert task is not None and task.done()
	assert player.clock.task is None
