"""Recursive cell tree model for one slot's pattern.

A slot's pattern is a tree of cells.  A ``Group`` divides its time span
among its children in proportion to their weights; ``Note`` and ``Rest``
are leaves.  Cells are immutable once received from the backend.

Cells are addressed by *paths*: tuples of child indices starting from the
slot's top-level child list.  ``(2, 1)`` is the second child of the third
top-level cell.
"""

import dataclasses
import typing

import slotview.constants


Path = typing.Tuple[int, ...]


@dataclasses.dataclass (frozen=True)
class Note:

	"""A sounding leaf cell."""

	weight: float
	pitch: int
	velocity: float = 1.0
	delay: float = 0.0
	gate: float = 1.0


@dataclasses.dataclass (frozen=True)
class Rest:

	"""A silent leaf cell."""

	weight: float


@dataclasses.dataclass (frozen=True)
class Group:

	"""A cell whose span is subdivided among ``children`` by weight."""

	weight: float
	children: typing.Tuple["Cell", ...] = ()


Cell = typing.Union[Note, Rest, Group]


@dataclasses.dataclass (frozen=True)
class TimeSignature:

	"""Numerator / denominator pair that determines a slot's loop length."""

	numerator: float
	denominator: float

	@property
	def loop_length_quarters (self) -> float:

		"""Quarter notes per loop, or 0.0 when either part is not positive.

		A zero loop length disables integration and projection for the slot.
		"""

		if self.numerator <= 0 or self.denominator <= 0:
			return 0.0

		return self.numerator * (slotview.constants.QUARTERS_PER_WHOLE / self.denominator)

	def __str__ (self) -> str:
		return f"{self.numerator:g}/{self.denominator:g}"


@dataclasses.dataclass (frozen=True)
class Slot:

	"""One of the sixteen loop containers: a root cell and its time signature."""

	index: int
	root: Cell
	time_signature: TimeSignature

	@property
	def loop_length_quarters (self) -> float:
		return self.time_signature.loop_length_quarters


def clamp (value: float, low: float = 0.0, high: float = 1.0) -> float:

	"""Clamp ``value`` into ``[low, high]``."""

	return min(high, max(low, value))


def cell_weight (weight: float) -> float:

	"""Effective weight of a cell - non-positive weights count as 1."""

	return weight if weight > 0 else 1.0


def top_level_cells (root: Cell) -> typing.Tuple[Cell, ...]:

	"""Return the slot's top-level child list.

	A Group root exposes its children.  A lone Note or Rest root is treated as
	a list of one so that paths still have somewhere to start.
	"""

	if isinstance(root, Group):
		return root.children

	return (root,)


def cell_at_path (root: Cell, path: typing.Sequence[int]) -> typing.Optional[Cell]:

	"""Follow ``path`` from the top-level child list, or return None if it leads nowhere."""

	if not path:
		return None

	cells = top_level_cells(root)
	current: typing.Optional[Cell] = None

	for depth, index in enumerate(path):

		if index < 0 or index >= len(cells):
			return None

		current = cells[index]

		if depth < len(path) - 1:
			if not isinstance(current, Group):
				return None
			cells = current.children

	return current


def children_at_path (root: Cell, path: typing.Sequence[int]) -> typing.Optional[typing.Tuple[Cell, ...]]:

	"""Return the child list found at ``path`` (the top-level list for an empty path)."""

	if not path:
		return top_level_cells(root)

	cell = cell_at_path(root, path)

	if not isinstance(cell, Group):
		return None

	return cell.children


def collect_leaf_paths (root: Cell) -> typing.List[Path]:

	"""List the paths of every leaf in document order.

	Notes and Rests are leaves, and so is an empty Group, which still
	occupies visible space in the roll.
	"""

	leaves: typing.List[Path] = []

	def _walk (cells: typing.Tuple[Cell, ...], parent: Path) -> None:

		for index, cell in enumerate(cells):

			path = parent + (index,)

			if isinstance(cell, Group) and cell.children:
				_walk(cell.children, path)
			else:
				leaves.append(path)

	_walk(top_level_cells(root), ())

	return leaves


def is_path_prefix (prefix: typing.Sequence[int], path: typing.Sequence[int]) -> bool:

	"""Return True when ``prefix`` addresses ``path`` or one of its ancestors."""

	if len(prefix) > len(path):
		return False

	return tuple(path[:len(prefix)]) == tuple(prefix)
