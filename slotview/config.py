"""YAML configuration for the command line runner.

Example ``slotview.yaml``::

	bridge:
	  url: ws://127.0.0.1:8765
	osc:
	  port: 9000          # 0 disables OSC transport input
	display:
	  frame_rate: 60
	transport:
	  stale_sync_seconds: 0.5   # omit to keep the half-loop unwrap rule
	logging:
	  level: INFO

Every key is optional.
"""

import dataclasses
import logging
import math
import os
import typing

import yaml


logger = logging.getLogger(__name__)


class ConfigError (ValueError):
	pass


@dataclasses.dataclass
class Config:

	"""Runtime settings with their defaults."""

	bridge_url: str = "ws://127.0.0.1:8765"
	osc_port: int = 9000
	frame_rate: float = 60.0
	stale_sync_seconds: typing.Optional[float] = None
	log_level: str = "INFO"


def _section (data: typing.Dict[str, typing.Any], name: str) -> typing.Dict[str, typing.Any]:

	value = data.get(name) or {}

	if not isinstance(value, dict):
		raise ConfigError(f"Config section {name!r} must be a mapping")

	return value


def load_config (config_path: str = "slotview.yaml") -> Config:

	"""
	Load configuration from a YAML file, falling back to defaults when it is missing.

	Raises:
		ConfigError: If the file is not a mapping or a value has the wrong type or range.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return Config()

	with open(config_path, "r") as f:
		data = yaml.safe_load(f) or {}

	if not isinstance(data, dict):
		raise ConfigError(f"{config_path} must contain a mapping")

	return parse_config(data)


def parse_config (data: typing.Dict[str, typing.Any]) -> Config:

	"""Build a :class:`Config` from an already-loaded mapping."""

	config = Config()

	bridge = _section(data, "bridge")
	osc = _section(data, "osc")
	display = _section(data, "display")
	transport = _section(data, "transport")
	log = _section(data, "logging")

	try:
		config.bridge_url = str(bridge.get("url", config.bridge_url))
		config.osc_port = int(osc.get("port", config.osc_port))
		config.frame_rate = float(display.get("frame_rate", config.frame_rate))

		stale = transport.get("stale_sync_seconds")
		config.stale_sync_seconds = float(stale) if stale is not None else None

		config.log_level = str(log.get("level", config.log_level)).upper()

	except (TypeError, ValueError) as exc:
		raise ConfigError(f"Invalid config value: {exc}") from exc

	if not math.isfinite(config.frame_rate) or config.frame_rate <= 0:
		raise ConfigError("display.frame_rate must be a positive number")

	if not 0 <= config.osc_port <= 65535:
		raise ConfigError("osc.port must be between 0 and 65535")

	if config.stale_sync_seconds is not None and (not math.isfinite(config.stale_sync_seconds) or config.stale_sync_seconds <= 0):
		raise ConfigError("transport.stale_sync_seconds must be a positive number")

	if config.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
		raise ConfigError(f"Unknown logging.level {config.log_level!r}")

	return config
