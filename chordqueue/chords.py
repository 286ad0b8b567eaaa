"""Chord and note parsing.

Turns request text into something playable:

- ``"Cmaj Am(2) F G7(2)"`` becomes a list of :class:`Step` objects, one per
  chord, each holding MIDI note numbers and a length in milliseconds.
- ``"C4 E4(0.5) G4"`` becomes a list of ``(note, length_ms)`` pairs.

Token syntax:

- Chord: root ``A``-``G``, optional ``#`` or ``b``, optional quality suffix
  (see :data:`QUALITY_SUFFIXES`), optional ``(beats)`` length. Chords last
  one bar (4 beats) unless a length is given.
- Note: root, optional accidental, octave (``C4`` = 60, middle C), optional
  ``(beats)`` length. Notes last one beat unless a length is given.

Lengths are converted with the current tempo, and the last chord of a
progression is shortened slightly so that a loop is ready again before the
next bar starts.
"""

import dataclasses
import math
import re
import typing

import chordqueue.constants
import chordqueue.errors


NOTE_NAMES = "ABCDEFG"

NOTE_NAME_TO_PC: typing.Dict[str, int] = {
	"C": 0,
	"C#": 1,
	"Db": 1,
	"D": 2,
	"D#": 3,
	"Eb": 3,
	"E": 4,
	"F": 5,
	"F#": 6,
	"Gb": 6,
	"G": 7,
	"G#": 8,
	"Ab": 8,
	"A": 9,
	"A#": 10,
	"Bb": 10,
	"B": 11,
	"Cb": 11,
	"E#": 5,
	"Fb": 4,
	"B#": 0,
}

CHORD_INTERVALS: typing.Dict[str, typing.List[int]] = {
	"major": [0, 4, 7],
	"minor": [0, 3, 7],
	"diminished": [0, 3, 6],
	"augmented": [0, 4, 8],
	"dominant_7th": [0, 4, 7, 10],
	"major_7th": [0, 4, 7, 11],
	"minor_7th": [0, 3, 7, 10],
	"half_diminished_7th": [0, 3, 6, 10],
	"diminished_7th": [0, 3, 6, 9],
	"sus2": [0, 2, 7],
	"sus4": [0, 5, 7],
	"major_6th": [0, 4, 7, 9],
	"minor_6th": [0, 3, 7, 9],
	"dominant_9th": [0, 4, 7, 10, 14],
}

QUALITY_SUFFIXES: typing.Dict[str, str] = {
	"": "major",
	"maj": "major",
	"M": "major",
	"m": "minor",
	"min": "minor",
	"dim": "diminished",
	"aug": "augmented",
	"+": "augmented",
	"7": "dominant_7th",
	"maj7": "major_7th",
	"M7": "major_7th",
	"m7": "minor_7th",
	"min7": "minor_7th",
	"m7b5": "half_diminished_7th",
	"dim7": "diminished_7th",
	"sus2": "sus2",
	"sus4": "sus4",
	"6": "major_6th",
	"m6": "minor_6th",
	"9": "dominant_9th",
}

_LENGTH_PATTERN = re.compile(r"^(?P<body>[^()]+?)(?:\((?P<beats>\d*\.?\d+)\))?$")
_CHORD_PATTERN = re.compile(r"^(?P<root>[A-G][#b]?)(?P<quality>.*)$")
_NOTE_PATTERN = re.compile(r"^(?P<root>[A-G][#b]?)(?P<octave>-?\d)$")


@dataclasses.dataclass
class Step:

	"""One chord of a progression: the notes to hold and for how long."""

	notes: typing.List[int]
	duration_ms: int


def split_arguments (message: str) -> typing.List[str]:
	return message.split()


def calculate_timeout (beats: float, tempo: int) -> int:

	"""Length of ``beats`` quarter notes at ``tempo`` BPM, in whole milliseconds."""

	return math.floor(beats * chordqueue.constants.MILLISECONDS_PER_MINUTE / tempo)


def split_length (token: str, default_beats: float) -> typing.Tuple[str, float]:

	"""
	Separate a token from its optional ``(beats)`` suffix.

	Returns ``(body, beats)``; ``beats`` is ``default_beats`` when no suffix is
	given. Raises ``ValueError`` for malformed or non-positive lengths.
	"""

	match = _LENGTH_PATTERN.match(token)

	if match is None:
		raise ValueError(f"Malformed token: {token!r}")

	if match.group("beats") is None:
		return match.group("body"), default_beats

	beats = float(match.group("beats"))

	if beats <= 0:
		raise ValueError(f"Length must be positive: {token!r}")

	return match.group("body"), beats


def parse_chord (chord: str) -> typing.List[int]:

	"""
	Return the MIDI notes of a chord symbol such as ``"Am"`` or ``"F#maj7"``.

	Raises ``InvalidChord`` naming the symbol when it cannot be read.
	"""

	match = _CHORD_PATTERN.match(chord)

	if match is None or match.group("root") not in NOTE_NAME_TO_PC or match.group("quality") not in QUALITY_SUFFIXES:
		raise chordqueue.errors.InvalidChord(chord)

	root = chordqueue.constants.CHORD_ROOT_MIDI + NOTE_NAME_TO_PC[match.group("root")]
	intervals = CHORD_INTERVALS[QUALITY_SUFFIXES[match.group("quality")]]

	return [root + interval for interval in intervals]


def parse_note (note: str) -> int:

	"""
	Return the MIDI note number of a note name such as ``"C4"`` (60) or ``"Bb2"``.

	Raises ``InvalidNote`` naming the note when it cannot be read or falls
	outside 0-127.
	"""

	match = _NOTE_PATTERN.match(note)

	if match is None or match.group("root") not in NOTE_NAME_TO_PC:
		raise chordqueue.errors.InvalidNote(note)

	midi_note = (int(match.group("octave")) + 1) * 12 + NOTE_NAME_TO_PC[match.group("root")]

	if not 0 <= midi_note <= 127:
		raise chordqueue.errors.InvalidNote(note)

	return midi_note


def parse_progression (progression: str, tempo: int) -> typing.List[Step]:

	"""
	Parse a space-separated chord progression into playable steps.

	The final step is shortened by ``LAST_CHORD_MULTIPLIER``.

	Raises:
		InvalidChord: For the first chord that cannot be read, or for an empty
			progression.

	Example:
		```python
		parse_progression("Cmaj Gmaj(2)", 120)
		# → [Step(notes=[60, 64, 67], duration_ms=2000), Step(notes=[67, 71, 74], duration_ms=900)]
		```
	"""

	chords = split_arguments(progression)

	if not chords:
		raise chordqueue.errors.InvalidChord(progression)

	last_index = len(chords) - 1
	steps: typing.List[Step] = []

	for index, token in enumerate(chords):

		try:
			chord, beats = split_length(token, chordqueue.constants.DEFAULT_CHORD_BEATS)
		except ValueError:
			raise chordqueue.errors.InvalidChord(token)

		multiplier = chordqueue.constants.LAST_CHORD_MULTIPLIER if index == last_index else 1.0
		duration_ms = math.floor(calculate_timeout(beats, tempo) * multiplier)

		steps.append(Step(notes=parse_chord(chord), duration_ms=duration_ms))

	return steps


def parse_notes (message: str, tempo: int) -> typing.List[typing.Tuple[int, int]]:

	"""
	Parse space-separated notes into ``(midi_note, length_ms)`` pairs.

	Raises ``InvalidNote`` for the first note that cannot be read, or for
	empty input.
	"""

	tokens = split_arguments(message)

	if not tokens:
		raise chordqueue.errors.InvalidNote(message)

	notes: typing.List[typing.Tuple[int, int]] = []

	for token in tokens:

		try:
			note, beats = split_length(token, chordqueue.constants.DEFAULT_NOTE_BEATS)
		except ValueError:
			raise chordqueue.errors.InvalidNote(token)

		notes.append((parse_note(note), calculate_timeout(beats, tempo)))

	return notes
