"""Controller (CC) messages and sweeps.

A controller command is ``"<controller> <value> [<delay_ms>]"``; a message
is a comma-separated list of commands, e.g. ``"74 0, 74 127 2000"`` sweeps
controller 74 from 0 to 127 over two seconds. Consecutive commands on the
same controller with different delays are joined by interpolated values.
"""

import typing

import chordqueue.constants
import chordqueue.errors


ControllerCommand = typing.Tuple[int, int, int]

COMMAND_SEPARATOR = ","


def split_commands (message: str) -> typing.List[str]:

	"""Split a message into its commands, dropping empty ones."""

	return [command.strip() for command in message.split(COMMAND_SEPARATOR) if command.strip()]


def validate_controller_message (command: str) -> ControllerCommand:

	"""
	Parse a single command into ``(controller, value, delay_ms)``.

	Raises ``InvalidController`` naming the command when it cannot be read or
	is out of range.
	"""

	parts = command.split()

	if len(parts) not in (2, 3):
		raise chordqueue.errors.InvalidController(command)

	try:
		numbers = [int(part) for part in parts]
	except ValueError:
		raise chordqueue.errors.InvalidController(command)

	controller, value = numbers[0], numbers[1]
	delay = numbers[2] if len(numbers) == 3 else 0

	if not 0 <= controller <= 127 or not 0 <= value <= 127 or delay < 0:
		raise chordqueue.errors.InvalidController(command)

	return controller, value, delay


def sweep (start_value: int, end_value: int, start_time: int, end_time: int, precision: int = chordqueue.constants.SWEEP_PRECISION) -> typing.List[typing.Tuple[int, int]]:

	"""
	Interpolate from one controller value to another over a span of time.

	Returns ``(value, time_ms)`` pairs after the start point, ending exactly on
	``(end_value, end_time)``. At most ``precision`` steps are produced and
	steps that would repeat the previous value are left out.

	Example:
		```python
		sweep(0, 4, 0, 100, precision=4)  # → [(1, 25), (2, 50), (3, 75), (4, 100)]
		```
	"""

	if precision < 1:
		raise ValueError("precision must be at least 1")

	result: typing.List[typing.Tuple[int, int]] = []
	previous = start_value

	for step in range(1, precision + 1):

		progress = step / precision
		value = round(start_value + (end_value - start_value) * progress)
		time = round(start_time + (end_time - start_time) * progress)

		if value == previous and step != precision:
			continue

		result.append((value, time))
		previous = value

	return result


def process_commands (commands: typing.List[str], precision: int = chordqueue.constants.SWEEP_PRECISION) -> typing.List[ControllerCommand]:

	"""
	Validate a list of commands and expand sweeps between them.

	Raises ``BadControllerMessage`` for an empty list and ``InvalidController``
	for the first command that cannot be read.
	"""

	if not commands:
		raise chordqueue.errors.BadControllerMessage()

	parsed = [validate_controller_message(command) for command in commands]
	result: typing.List[ControllerCommand] = [parsed[0]]

	for (pre_controller, pre_value, pre_time), (post_controller, post_value, post_time) in zip(parsed, parsed[1:]):

		if pre_controller == post_controller and post_time != pre_time:
			result.extend(
				(post_controller, value, time)
				for value, time in sweep(pre_value, post_value, pre_time, post_time, precision)
			)
			continue

		result.append((post_controller, post_value, post_time))

	return result
