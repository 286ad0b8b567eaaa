import typing


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	A synchronous event emitter with explicit subscription lists.

	Listeners may unsubscribe themselves (or others) while an event is being
	dispatched: each emit works on a snapshot of the subscription list taken
	when the emit began, and skips listeners removed in the meantime.
	"""

	def __init__ (self) -> None:

		"""
		Initialize an empty event registry.
		"""

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)

	def remove_all (self, event_name: str) -> None:

		"""
		Drop every listener for an event name.
		"""

		self._listeners.pop(event_name, None)

	def listener_count (self, event_name: str) -> int:
		return len(self._listeners.get(event_name, []))


	def emit_sync (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and call every listener immediately, in subscription order.
		"""

		listeners = self._listeners.get(event_name)

		if not listeners:
			return

		for callback in list(listeners):

			# Removed by an earlier listener during this dispatch.
			if callback not in listeners:
				continue

			callback(*args, **kwargs)
