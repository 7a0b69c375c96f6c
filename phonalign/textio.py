"""Plain-text readers and writers for file lists, label files and numeric arrays.

Numeric arrays use a whitespace-separated text layout. A matrix starts with
its height and width, followed by the values row by row. A vector starts with
its length, followed by the values.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Union

import numpy as np

PathLike = Union[str, Path]

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _atoi(token: str) -> int:
    """Parse the leading integer of ``token``, or 0 if there is none."""
    match = _LEADING_INT.match(token)
    return int(match.group(1)) if match else 0


def _tokens(path: PathLike) -> list[str]:
    return Path(path).read_text().split()


def read_file_list(path: PathLike, missing_ok: bool = False) -> list[str]:
    """Return the non-empty lines of a list file.

    A file that cannot be opened gives an empty list when ``missing_ok`` is
    true and raises ``OSError`` otherwise.
    """
    try:
        text = Path(path).read_text()
    except OSError:
        if missing_ok:
            return []
        raise
    return [line for line in text.splitlines() if line]


def read_counted_ints(path: PathLike) -> list[int]:
    """Read integers from a file whose first value is the number that follow."""
    tokens = _tokens(path)
    if not tokens:
        return []
    count = int(tokens[0])
    return [int(token) for token in tokens[1 : 1 + max(count, 0)]]


def read_start_times(path: PathLike) -> list[int]:
    """Read every whitespace-separated token of a file as a start frame."""
    return [_atoi(token) for token in _tokens(path)]


def read_matrix(path: PathLike) -> np.ndarray:
    """Read a matrix given as height, width and then its values row by row."""
    tokens = _tokens(path)
    if len(tokens) < 2:
        raise ValueError(f"{path}: missing matrix dimensions")
    height, width = int(tokens[0]), int(tokens[1])
    if height < 0 or width < 0:
        raise ValueError(f"{path}: negative matrix dimensions")
    needed = height * width
    values = tokens[2 : 2 + needed]
    if len(values) < needed:
        raise ValueError(
            f"{path}: expected {needed} matrix values, found {len(values)}"
        )
    return np.array([float(v) for v in values], dtype=float).reshape(height, width)


def read_vector(path: PathLike) -> np.ndarray:
    """Read a vector given as its length and then its values."""
    tokens = _tokens(path)
    if not tokens:
        raise ValueError(f"{path}: missing vector size")
    size = int(tokens[0])
    if size < 0:
        raise ValueError(f"{path}: negative vector size")
    values = tokens[1 : 1 + size]
    if len(values) < size:
        raise ValueError(f"{path}: expected {size} vector values, found {len(values)}")
    return np.array([float(v) for v in values], dtype=float)


def write_vector(path: PathLike, values: Iterable[float]) -> None:
    """Write a vector in the layout :func:`read_vector` reads."""
    items = [format(float(v), ".17g") for v in values]
    Path(path).write_text(f"{len(items)}\n{' '.join(items)}\n")


def format_sequence(values: Iterable[object]) -> str:
    """Render each value followed by a single space."""
    return "".join(f"{value} " for value in values)