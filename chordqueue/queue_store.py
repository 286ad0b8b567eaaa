"""Per-type queues of pending playback requests.

Each queued request type owns a mapping from turn id to payload. Turn ids are
handed out in strictly increasing order starting at 0 and are never reused;
the cursor names the turn currently allowed to play and only ever moves
forward, one step per completed request.
"""

import copy
import logging
import typing

import chordqueue.constants
import chordqueue.errors
import chordqueue.state


logger = logging.getLogger(__name__)


class QueueStore:

	"""
	Ordered storage of pending requests, operating on a shared ``SchedulerState``.
	"""

	def __init__ (self, state: chordqueue.state.SchedulerState) -> None:

		self.state = state


	def enqueue (self, request_type: str, request: str) -> int:

		"""
		Add a request to the queue for its type and return its turn id.

		Raises ``DuplicateRequest`` if the request is identical to the last one
		queued for the same type and that one has not played yet.
		"""

		if request == self._last_in_queue(request_type):
			raise chordqueue.errors.DuplicateRequest(request)

		turn = self.state.last_ids[request_type] + 1
		self.state.last_ids[request_type] = turn
		self.state.queues[request_type][turn] = request

		logger.debug(f"Queued {request_type} turn {turn}: {request!r}")

		return turn

	def cancel (self, request_type: str, turn: int) -> None:

		"""
		Replace a pending entry with a tombstone so its turn is skipped in order.
		"""

		queue = self.state.queues[request_type]

		if turn in queue:
			queue[turn] = None
			logger.debug(f"Cancelled {request_type} turn {turn}")


	def advance (self, request_type: str) -> None:

		"""
		Move the cursor for a type on to the next turn.

		A loop that is playing alone (an entry at the cursor and nothing queued
		after it) keeps its turn, so it is replayed on the next bar.
		"""

		cursor = self.state.cursors[request_type]
		next_turn = cursor + 1

		if self._is_looping_alone(request_type, next_turn):
			return

		self.state.queues[request_type].pop(cursor, None)
		self.state.cursors[request_type] = next_turn

		logger.debug(f"Advanced {request_type} to turn {next_turn}")

		if self.is_empty(chordqueue.constants.PROGRESSION) and self.is_empty(chordqueue.constants.LOOP):
			self.state.now_playing = None

	def current_turn (self, request_type: str) -> int:
		return self.state.cursors[request_type]

	def entry (self, request_type: str, turn: int) -> typing.Optional[str]:

		"""Return the live payload for a turn, or ``None`` for tombstones and missing turns."""

		return self.state.queues[request_type].get(turn)

	def has_turn (self, request_type: str, turn: int) -> bool:
		return turn in self.state.queues[request_type]

	def is_empty (self, request_type: str) -> bool:
		return not self.state.queues[request_type]


	def peek_pending (self, request_type: str) -> typing.List[typing.Tuple[str, str]]:

		"""
		List the requests still to play for a type, in turn order.

		Entries held in the backup snapshot are included (live entries win on
		the same turn); tombstones are left out.
		"""

		merged = {**self.state.backups[request_type], **self.state.queues[request_type]}
		cursor = self.state.cursors[request_type]

		return [
			(request_type, merged[turn])
			for turn in sorted(merged)
			if turn >= cursor and merged[turn]
		]

	def pending_queue (self) -> typing.List[typing.Tuple[str, str]]:

		"""Pending progressions followed by pending loops."""

		return self.peek_pending(chordqueue.constants.PROGRESSION) + self.peek_pending(chordqueue.constants.LOOP)


	def clear (self, request_type: str, backup: bool = False) -> None:

		"""
		Empty the live queue for a type.

		With ``backup`` the current entries replace the backup snapshot so that
		``rollback`` can restore them; otherwise the snapshot is discarded.
		"""

		if backup:
			self.state.backups[request_type] = copy.deepcopy(self.state.queues[request_type])
		else:
			self.state.backups[request_type] = {}

		self.state.queues[request_type] = {}

		logger.debug(f"Cleared {request_type} queue (backup={backup})")

	def clear_all (self, backup: bool = False) -> None:

		"""Clear every queue and the now-playing record."""

		for request_type in chordqueue.constants.ALL_REQUEST_TYPES:
			self.clear(request_type, backup=backup)

		self.state.now_playing = None

	def clear_many (self, *request_types: str) -> None:

		"""
		Clear several queues without backup.

		Clearing both progressions and loops also clears the now-playing record.
		"""

		for request_type in request_types:
			self.clear(request_type)

		if chordqueue.constants.PROGRESSION in request_types and chordqueue.constants.LOOP in request_types:
			self.state.now_playing = None

	def rollback (self, request_type: str) -> None:

		"""
		Restore entries from the backup snapshot underneath the live queue.

		Live entries win on the same turn. Turns the cursor has already passed
		are not restored.
		"""

		cursor = self.state.cursors[request_type]
		backup = copy.deepcopy(self.state.backups[request_type])
		restored = {turn: request for turn, request in backup.items() if turn >= cursor}

		self.state.queues[request_type] = {**restored, **self.state.queues[request_type]}

		logger.debug(f"Rolled back {request_type} queue ({len(restored)} entries restored)")


	def _last_in_queue (self, request_type: str) -> typing.Optional[str]:
		return self.state.queues[request_type].get(self.state.last_ids[request_type])

	def _is_looping_alone (self, request_type: str, next_turn: int) -> bool:

		"""
		A loop is alone when it has an entry at the cursor and no live successor.

		Tombstones after the cursor are not successors.
		"""

		if request_type != chordqueue.constants.LOOP:
			return False

		queue = self.state.queues[request_type]

		if queue.get(self.state.cursors[request_type]) is None:
			return False

		return not any(request is not None for turn, request in queue.items() if turn >= next_turn)
