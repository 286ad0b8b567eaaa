import asyncio
import logging
import signal
import sys

import chordqueue.aliases
import chordqueue.command_server
import chordqueue.config
import chordqueue.osc
import chordqueue.player


logger = logging.getLogger(__name__)


async def run_until_stopped (config: chordqueue.config.Config, player: chordqueue.player.Player) -> None:

	"""
	Open the MIDI output, start the clock and serve commands until a stop signal is received.
	"""

	player.initialize(config.device_name)
	player.set_tempo(str(config.initial_tempo))

	if config.osc_enabled:
		chordqueue.osc.OscAnnouncer(config.osc_send_host, config.osc_send_port).start(player)

	server = chordqueue.command_server.CommandServer(player, port=config.server_port)
	await server.start()

	logger.info("Ready for requests. Press Ctrl+C to stop.")

	stop_event = asyncio.Event()
	loop = asyncio.get_running_loop()

	def _request_stop () -> None:

		"""
		Signal handler to request a clean shutdown.
		"""

		stop_event.set()

	for sig in (signal.SIGINT, signal.SIGTERM):
		loop.add_signal_handler(sig, _request_stop)

	await stop_event.wait()

	logger.info("Stopping...")

	await server.stop()
	await player.disable()


def main () -> None:

	"""
	Main entry point for the chordqueue application.
	"""

	config_path = sys.argv[1] if len(sys.argv) > 1 else 'config.yaml'
	config = chordqueue.config.load_config(config_path)

	logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

	logger.info("chordqueue starting...")

	aliases = chordqueue.aliases.AliasStore(config.aliases_path)
	aliases.fetch()

	player = chordqueue.player.Player.from_config(config, aliases)

	asyncio.run(run_until_stopped(config, player))


if __name__ == "__main__":
	main()
