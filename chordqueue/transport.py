"""MIDI output transport.

A thin wrapper over a mido output port exposing just what playback needs:
note on/off, control change, the MIDI clock pulse, transport start/stop and
all-notes-off. Send failures are logged rather than raised so that a
disconnected device never breaks the clock.
"""

import logging
import typing

import mido

import chordqueue.constants


logger = logging.getLogger(__name__)


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:
	"""
	Select and open a MIDI output device.

	If `device_name` is provided, attempts to open that specific device.
	If `device_name` is None, auto-discovers available devices:
	- If exactly one device exists, it is selected automatically.
	- If several exist, logs them and returns None; a name must be configured.
	- If no devices exist, logs an error and returns None.

	Returns:
		A tuple of (device_name, midi_out_object) or (None, None) on failure.
	"""
	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:
			if device_name in outputs:
				midi_out = mido.open_output(device_name)
				logger.info(f"Opened MIDI output: {device_name}")
				return device_name, midi_out
			else:
				logger.error(
					f"MIDI output device '{device_name}' not found. "
					f"Available devices: {outputs}"
				)
				return None, None

		if len(outputs) == 1:
			selected_name = outputs[0]
			midi_out = mido.open_output(selected_name)
			logger.info(f"One MIDI output found - using '{selected_name}'")
			return selected_name, midi_out

		logger.error(
			f"Several MIDI outputs found, set midi.device_name in the config to one of: {outputs}"
		)
		return None, None

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


class MidiTransport:

	"""
	Output transport bound to one open mido port.
	"""

	def __init__ (self, port: typing.Any, name: str = "") -> None:

		self.port = port
		self.name = name


	@classmethod
	def open (cls, device_name: typing.Optional[str] = None) -> typing.Optional["MidiTransport"]:

		"""Open an output device, returning ``None`` when no device could be opened."""

		name, port = select_output_device(device_name)

		if port is None or name is None:
			return None

		return cls(port, name)


	def note_on (self, channel: int, note: int, velocity: int) -> None:
		self._send(mido.Message('note_on', channel=channel, note=note, velocity=velocity))

	def note_off (self, channel: int, note: int, velocity: int = 0) -> None:
		self._send(mido.Message('note_off', channel=channel, note=note, velocity=velocity))

	def control_change (self, channel: int, control: int, value: int) -> None:
		self._send(mido.Message('control_change', channel=channel, control=control, value=value))


	def clock (self) -> None:

		"""Send one MIDI timing clock pulse (0xF8)."""

		self._send(mido.Message('clock'))

	def start (self) -> None:
		self._send(mido.Message('start'))

	def stop (self) -> None:
		self._send(mido.Message('stop'))

	def all_notes_off (self, channel: int) -> None:

		"""Send All Notes Off (CC 123) and All Sound Off (CC 120) on a channel."""

		self.control_change(channel, chordqueue.constants.MIDI_ALL_NOTES_OFF, 0)
		self.control_change(channel, chordqueue.constants.MIDI_ALL_SOUND_OFF, 0)


	def close (self) -> None:

		"""Close the underlying port."""

		self.port.close()
		logger.info(f"Closed MIDI output: {self.name}")


	def _send (self, message: mido.Message) -> None:

		try:
			self.port.send(message)
		except Exception:
			logger.exception(f"Failed to send MIDI {message.type} message (device may be disconnected)")
