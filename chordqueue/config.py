import dataclasses
import logging
import os
import typing

import yaml

import chordqueue.constants


logger = logging.getLogger(__name__)


@dataclasses.dataclass
class Config:

	"""
	Runtime settings, read from the YAML config file.
	"""

	device_name: typing.Optional[str] = None
	channel: int = chordqueue.constants.DEFAULT_CHANNEL

	initial_tempo: int = chordqueue.constants.DEFAULT_TEMPO
	initial_volume: int = chordqueue.constants.DEFAULT_VOLUME
	min_tempo: int = chordqueue.constants.MIN_TEMPO
	max_tempo: int = chordqueue.constants.MAX_TEMPO
	spin_wait: bool = True

	aliases_path: typing.Optional[str] = "aliases.yaml"

	server_port: int = 5556

	osc_enabled: bool = False
	osc_send_host: str = "127.0.0.1"
	osc_send_port: int = 9001

	log_level: str = "INFO"


def load_config (config_path: str = 'config.yaml') -> Config:

	"""
	Load configuration from a YAML file, falling back to defaults for anything missing.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return Config()

	with open(config_path, 'r') as f:
		raw = yaml.safe_load(f) or {}

	return config_from_dict(raw)


def config_from_dict (raw: typing.Dict[str, typing.Any]) -> Config:

	"""Build a ``Config`` from the nested sections of a parsed config file."""

	defaults = Config()

	midi = raw.get('midi') or {}
	player = raw.get('player') or {}
	aliases = raw.get('aliases') or {}
	server = raw.get('server') or {}
	osc = raw.get('osc') or {}
	logging_section = raw.get('logging') or {}

	return Config(
		device_name = midi.get('device_name', defaults.device_name),
		channel = int(midi.get('channel', defaults.channel)),
		initial_tempo = int(player.get('initial_tempo', defaults.initial_tempo)),
		initial_volume = int(player.get('initial_volume', defaults.initial_volume)),
		min_tempo = int(player.get('min_tempo', defaults.min_tempo)),
		max_tempo = int(player.get('max_tempo', defaults.max_tempo)),
		spin_wait = bool(player.get('spin_wait', defaults.spin_wait)),
		aliases_path = aliases.get('path', defaults.aliases_path),
		server_port = int(server.get('port', defaults.server_port)),
		osc_enabled = bool(osc.get('enabled', defaults.osc_enabled)),
		osc_send_host = osc.get('send_host', defaults.osc_send_host),
		osc_send_port = int(osc.get('send_port', defaults.osc_send_port)),
		log_level = str(logging_section.get('level', defaults.log_level)).upper()
	)
