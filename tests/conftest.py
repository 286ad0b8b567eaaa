import typing

import mido
import pytest

import chordqueue.player
import chordqueue.transport


class FakeMidiOut:

	"""MIDI output stub that records what is sent."""

	def __init__ (self) -> None:

		"""Start with no messages and an open port."""

		self.messages: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.messages.append(message)

	def close (self) -> None:

		"""Mark the fake device as closed."""

		self.closed = True

	def of_type (self, message_type: str) -> typing.List[mido.Message]:

		"""Return the recorded messages of one type, in order."""

		return [message for message in self.messages if message.type == message_type]


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	return FakeMidiOut()


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI output for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)


@pytest.fixture
def midi_out () -> FakeMidiOut:

	"""A recording fake output port."""

	return FakeMidiOut()


@pytest.fixture
def player (midi_out: FakeMidiOut) -> chordqueue.player.Player:

	"""A player bound to the fake output, with a tempo fast enough for tests.

	At 60000 BPM one beat lasts one millisecond, so a default four-beat chord
	holds for 4 ms.
	"""

	player = chordqueue.player.Player(spin_wait=False)
	player.bind(chordqueue.transport.MidiTransport(midi_out, "Dummy MIDI"))
	player.state.tempo = 60000

	return player
