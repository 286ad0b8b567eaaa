"""OSC broadcasting of now-playing changes.

Enable with ``osc.enabled: true`` in the config. Whenever a different
progression or loop starts, the announcer sends::

	/now_playing <type> <request>

A record being cleared is not announced.
"""

import logging
import typing

import pythonosc.udp_client

import chordqueue.player


logger = logging.getLogger(__name__)


class OscAnnouncer:

	"""Sends player notifications to an OSC listener over UDP."""

	def __init__ (self, send_host: str = "127.0.0.1", send_port: int = 9001) -> None:

		self._send_host = send_host
		self._send_port = send_port
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None


	def start (self, player: chordqueue.player.Player) -> None:

		"""Open the UDP client and subscribe to the player's notifications."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)
		player.on_now_playing(self.announce_now_playing)

		logger.info(f"OSC announcing to {self._send_host}:{self._send_port}")


	def announce_now_playing (self, request_type: str, request: str) -> None:
		self.send("/now_playing", request_type, request)


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, list(args))
			except Exception as e:
				logger.warning(f"OSC send error: {e}")
