"""Error taxonomy for chordqueue.

Every error carries a stable, human-readable message so that callers (a chat
bot, the command server) can relay it verbatim. Errors that concern a
specific token include it in the message.
"""

import typing


class ChordQueueError (Exception):

	"""
	Base class for all chordqueue errors.
	"""

	message: str = "Something went wrong"

	def __init__ (self, detail: typing.Optional[str] = None) -> None:

		"""Build the error message, optionally naming the offending input."""

		self.detail = detail

		if detail is None:
			super().__init__(self.message)
		else:
			super().__init__(f"{self.message}: {detail}")


class DuplicateRequest (ChordQueueError):
	message = "This request is already the last one in the queue"


class NoOutputBound (ChordQueueError):
	message = "MIDI output is not connected"


class MidiConnectionError (ChordQueueError):
	message = "Could not connect to the MIDI device"


class MidiDisconnectionError (ChordQueueError):
	message = "Could not disconnect from the MIDI device"


class InvalidChord (ChordQueueError):
	message = "Invalid chord"


class InvalidNote (ChordQueueError):
	message = "Invalid note"


class InvalidVolume (ChordQueueError):
	message = "Volume must be a whole number between 0 and 100"


class InvalidTempo (ChordQueueError):
	message = "Invalid tempo"


class InvalidController (ChordQueueError):
	message = "Invalid controller message"


class BadControllerMessage (ChordQueueError):
	message = "No controller messages to send"


class NotFound (ChordQueueError):
	message = "Alias not found"


class BadInsertion (ChordQueueError):
	message = "Could not save the alias, use the format alias/chords"


class PlaybackStopped (ChordQueueError):
	message = "Playback was stopped before this request could play"
