"""Named chord progressions and controller presets, stored in a YAML file.

File layout::

	chord_progressions:
	  blues: "C7 F7 C7 C7 F7 F7 C7 C7 G7 F7 C7 G7"
	cc_commands:
	  filter_open: ["74 0", "74 127 4000"]

Aliases are case-insensitive and stored in lower case. Changes live in memory
until :meth:`AliasStore.commit` writes them back.
"""

import logging
import os
import typing

import yaml

import chordqueue.errors


logger = logging.getLogger(__name__)

CHORD_PROGRESSIONS = "chord_progressions"
CC_COMMANDS = "cc_commands"

SECTIONS = (CHORD_PROGRESSIONS, CC_COMMANDS)


class AliasStore:

	"""
	In-memory copy of the alias file with explicit fetch and commit.
	"""

	def __init__ (self, path: typing.Optional[str] = None) -> None:

		"""Create an empty store; ``path`` of ``None`` keeps it in memory only."""

		self.path = path
		self.data: typing.Dict[str, typing.Dict[str, typing.Any]] = {section: {} for section in SECTIONS}


	def fetch (self) -> None:

		"""(Re)load the store from its file. A missing file leaves it empty."""

		self.data = {section: {} for section in SECTIONS}

		if self.path is None:
			return

		if not os.path.exists(self.path):
			logger.warning(f"Alias file {self.path} not found. Starting with no aliases.")
			return

		with open(self.path, 'r') as f:
			loaded = yaml.safe_load(f) or {}

		for section in SECTIONS:
			self.data[section] = {str(alias).lower(): value for alias, value in (loaded.get(section) or {}).items()}

		logger.info(f"Loaded {len(self.data[CHORD_PROGRESSIONS])} chord aliases and {len(self.data[CC_COMMANDS])} controller presets from {self.path}")

	def commit (self) -> None:

		"""Write the store back to its file."""

		if self.path is None:
			return

		with open(self.path, 'w') as f:
			yaml.safe_dump(self.data, f, default_flow_style=False, sort_keys=True)

		logger.debug(f"Saved aliases to {self.path}")


	def select (self, section: str, alias: str) -> typing.Optional[typing.Any]:
		return self.data[section].get(alias.lower())

	def items (self, section: str) -> typing.List[typing.Tuple[str, typing.Any]]:
		return list(self.data[section].items())

	def insert_update (self, section: str, alias: str, value: typing.Any) -> None:

		"""
		Add or replace an alias.

		Raises ``BadInsertion`` when the alias or value is empty or the section
		is unknown.
		"""

		if section not in self.data or not alias.strip() or not value:
			raise chordqueue.errors.BadInsertion()

		self.data[section][alias.strip().lower()] = value

	def delete (self, section: str, alias: str) -> None:

		"""
		Remove an alias.

		Raises ``NotFound`` naming the alias when it does not exist.
		"""

		key = alias.strip().lower()

		if section not in self.data or key not in self.data[section]:
			raise chordqueue.errors.NotFound(alias)

		del self.data[section][key]
