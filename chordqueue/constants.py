"""Constants for chordqueue.

Timing follows the MIDI clock convention: 24 pulses per quarter note and a
fixed 4/4 bar, so one bar is 96 pulses.

Request types name the kinds of playback request a caller can submit. Only
``PROGRESSION`` and ``LOOP`` are queued and arbitrated; the rest act
immediately.
"""

import typing


# Pulse-based MIDI timing

MIDI_QUARTER_NOTE = 24
BEATS_PER_BAR = 4
PULSES_PER_BAR = MIDI_QUARTER_NOTE * BEATS_PER_BAR

NANOSECONDS_PER_MINUTE = 60_000_000_000
MILLISECONDS_PER_MINUTE = 60_000

# Request types

PROGRESSION = "progression"
LOOP = "loop"
NOTE = "note"
CONTROLLER = "controller"
TEMPO = "tempo"
VOLUME = "volume"

RequestType = typing.Literal["progression", "loop", "note", "controller", "tempo", "volume"]

ALL_REQUEST_TYPES: typing.Tuple[str, ...] = (PROGRESSION, LOOP, NOTE, CONTROLLER, TEMPO, VOLUME)
QUEUED_REQUEST_TYPES: typing.Tuple[str, ...] = (PROGRESSION, LOOP)

# Marker for "no request" (cleared turns, stopped loops)

EMPTY_MESSAGE = ""

# Playback defaults

DEFAULT_TEMPO = 120
DEFAULT_VOLUME = 100
MIN_TEMPO = 35
MAX_TEMPO = 400
DEFAULT_CHANNEL = 0

# Default lengths in beats
DEFAULT_CHORD_BEATS = 4.0
DEFAULT_NOTE_BEATS = 1.0

# The last chord of a sequence is cut short so the next bar start is reached
# before a loop retriggers.
LAST_CHORD_MULTIPLIER = 0.9

# Chords are voiced with their root in octave 4.
CHORD_ROOT_MIDI = 60

# Velocity range conversion for the 0-100 volume scale.
VOLUME_TO_VELOCITY = 1.27

SWEEP_PRECISION = 256

# MIDI controller numbers
MIDI_ALL_NOTES_OFF = 123
MIDI_ALL_SOUND_OFF = 120

# Event names

BAR_START_EVENT = "bar_start"
NOW_PLAYING_EVENT = "now_playing"
