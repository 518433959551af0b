import typing

import pytest

import slotview.session


class FakeClock:

	"""Manually advanced time source for stamping sync arrivals."""

	def __init__ (self, start: float = 0.0) -> None:

		"""Start the clock at ``start`` seconds."""

		self.now = start

	def __call__ (self) -> float:

		"""Return the current fake time."""

		return self.now

	def advance (self, seconds: float) -> None:

		"""Move the clock forward."""

		self.now += seconds


def wire_note (pitch: int, weight: float = 1, velocity: float = 1, delay: float = 0, gate: float = 1) -> typing.Dict[str, typing.Any]:

	"""Build a wire-format note cell."""

	return {"type": "Note", "weight": weight, "pitch": pitch, "velocity": velocity, "delay": delay, "gate": gate}


def wire_measure (cells: typing.List[typing.Dict[str, typing.Any]], numerator: int = 4, denominator: int = 4) -> typing.Dict[str, typing.Any]:

	"""Build a wire-format measure whose root is a sequence of ``cells``."""

	return {
		"cell": {"type": "Sequence", "weight": 1, "cells": cells},
		"time_signature": {"numerator": numerator, "denominator": denominator},
	}


def wire_snapshot (version: int, bank: typing.List[typing.Any], measure: int = 0, cell: typing.Optional[typing.List[int]] = None) -> typing.Dict[str, typing.Any]:

	"""Build a ``state.changed`` payload."""

	return {
		"snapshot_version": version,
		"engine": {"sequence_bank": bank},
		"editor": {"selected": {"measure": measure, "cell": cell or []}, "input_mode": "pitch"},
	}


def event (name: str, payload: typing.Dict[str, typing.Any]) -> typing.Dict[str, typing.Any]:

	"""Wrap a payload in an event envelope."""

	return {"protocol": "xen.bridge.v1", "type": "event", "name": name, "payload": payload}


@pytest.fixture
def clock () -> FakeClock:

	"""A fake clock starting at zero."""

	return FakeClock()


@pytest.fixture
def session (clock: FakeClock) -> slotview.session.ViewSession:

	"""A session stamped by the fake clock."""

	return slotview.session.ViewSession(clock=clock)
