"""Live preview of bulk-selection pattern prefixes.

A bulk command can start with a selection pattern that picks cells among
the siblings of the current selection::

	+2 3 1 velocity 0.5

- ``+2`` - optional offset: start at sibling index 2 (default 0).
- ``3 1`` - strides, applied cyclically: 2, 5, 6, 9, 10, ...

The first token that is neither ``+K`` nor a number ends the pattern.  An
offset with no strides means stride 1.  Text with neither is not a pattern,
and the preview falls back to the current selection.

Parsing and matching never look at transport or phase state, so the preview
updates on every keystroke.
"""

import dataclasses
import re
import typing

import slotview.cells


_OFFSET_TOKEN = re.compile(r"^\+\d+$")
_STRIDE_TOKEN = re.compile(r"^\d+$")


@dataclasses.dataclass (frozen=True)
class PatternPrefix:

	"""A parsed selection pattern: start offset and cyclic strides (all positive)."""

	offset: int
	strides: typing.Tuple[int, ...]


def parse_prefix (text: str) -> typing.Optional[PatternPrefix]:

	"""Parse the pattern at the start of ``text``, or return None if there isn't one.

	Example:
		```python
		parse_prefix("+2 3 1")   # PatternPrefix(offset=2, strides=(3, 1))
		parse_prefix("+4")       # PatternPrefix(offset=4, strides=(1,))
		parse_prefix("4 gate")   # PatternPrefix(offset=0, strides=(4,))
		parse_prefix("gate 4")   # None
		```
	"""

	tokens = text.split()

	if not tokens:
		return None

	cursor = 0
	offset = 0
	has_offset = False

	if _OFFSET_TOKEN.match(tokens[0]):
		offset = int(tokens[0][1:])
		has_offset = True
		cursor = 1

	strides: typing.List[int] = []

	for token in tokens[cursor:]:

		if not _STRIDE_TOKEN.match(token):
			break

		stride = int(token)

		# Zero would never advance.
		if stride > 0:
			strides.append(stride)

	if not strides:
		if has_offset:
			return PatternPrefix(offset=offset, strides=(1,))
		return None

	return PatternPrefix(offset=offset, strides=tuple(strides))


def match_indices (scope_length: int, pattern: PatternPrefix) -> typing.Set[int]:

	"""Sibling indices in ``[0, scope_length)`` selected by ``pattern``.

	Example:
		```python
		match_indices(10, PatternPrefix(2, (3, 1)))   # {2, 5, 6, 9}
		```
	"""

	matches: typing.Set[int] = set()

	if scope_length <= 0 or not pattern.strides:
		return matches

	position = pattern.offset
	stride_index = 0

	while position < scope_length:

		if position >= 0:
			matches.add(position)

		position += pattern.strides[stride_index]
		stride_index = (stride_index + 1) % len(pattern.strides)

	return matches


def scope_path (selected_path: typing.Sequence[int]) -> slotview.cells.Path:

	"""Path of the group whose children form the matching scope.

	The scope is the sibling list that holds the selected cell, so it is the
	selection's parent.  A top-level (or empty) selection scopes to the slot's
	top-level child list, addressed by the empty path.
	"""

	return tuple(selected_path[:-1])


def scope_length (root: slotview.cells.Cell, selected_path: typing.Sequence[int]) -> int:

	"""Number of siblings in the matching scope, 0 if the selection path is stale."""

	children = slotview.cells.children_at_path(root, scope_path(selected_path))

	if children is None:
		return 0

	return len(children)


def leaf_scope_indices (leaves: typing.Sequence[slotview.cells.Path], scope: typing.Sequence[int]) -> typing.List[int]:

	"""For each leaf, the index of its ancestor among the scope's children.

	Leaves outside the scope get -1, which no pattern ever matches.
	"""

	depth = len(scope)
	indices: typing.List[int] = []

	for leaf in leaves:

		if len(leaf) > depth and slotview.cells.is_path_prefix(scope, leaf):
			indices.append(leaf[depth])
		else:
			indices.append(-1)

	return indices


def selected_leaf_flags (leaves: typing.Sequence[slotview.cells.Path], selected_path: typing.Sequence[int]) -> typing.List[bool]:

	"""Mark the leaves at or under the selected cell."""

	if not selected_path:
		return [False] * len(leaves)

	return [slotview.cells.is_path_prefix(selected_path, leaf) for leaf in leaves]


def preview_leaf_flags (text: str, root: slotview.cells.Cell, selected_path: typing.Sequence[int]) -> typing.Optional[typing.List[bool]]:

	"""Leaves the pattern at the start of ``text`` would select, in leaf order.

	A matched sibling that is a group lights up every leaf under it.
	Returns None when ``text`` does not start with a pattern.
	"""

	pattern = parse_prefix(text)

	if pattern is None:
		return None

	leaves = slotview.cells.collect_leaf_paths(root)
	scope = scope_path(selected_path)
	matched = match_indices(scope_length(root, selected_path), pattern)

	return [index in matched for index in leaf_scope_indices(leaves, scope)]
