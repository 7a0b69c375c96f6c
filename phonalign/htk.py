"""Reading and writing HTK parameter files."""

from __future__ import annotations

import struct
import sys
from dataclasses import dataclass
from typing import BinaryIO, Sequence

import numpy as np

HASENERGY = 0o100
HASNULLE = 0o200
HASDELTA = 0o400
HASACCS = 0o1000
HASCOMPX = 0o2000
HASZEROM = 0o4000
HASCRCC = 0o10000
HASZEROC = 0o20000
HASVQ = 0o40000
HASTHIRD = 0o100000
BASEMASK = 0o77

_BASE_KINDS = (
    "WAVEFORM", "LPC", "LPREFC", "LPCEPSTRA", "LPDELCEP", "IREFC",
    "MFCC", "FBANK", "MELSPEC", "USER", "DISCRETE", "PLP", "ANON",
)

_QUALIFIERS = (
    (HASENERGY, "_E"),
    (HASDELTA, "_D"),
    (HASACCS, "_N"),
    (HASTHIRD, "_A"),
    (HASNULLE, "_T"),
    (HASCOMPX, "_C"),
    (HASCRCC, "_K"),
    (HASZEROM, "_Z"),
    (HASZEROC, "_O"),
    (HASVQ, "_V"),
)

_HEADER = struct.Struct(">iihh")
_FLOAT = struct.Struct(">f")


class HtkFormatError(Exception):
    """Raised when an HTK stream is truncated or its header is unreadable."""


@dataclass
class HtkHeader:
    n_samples: int = 0
    samp_period: int = 0
    samp_size: int = 0
    parm_kind: int = 0


def parm_kind_to_str(parm_kind: int) -> str:
    """Return the HTK name of a parameter kind, e.g. ``MFCC_E_D``."""
    base = parm_kind & BASEMASK
    if base >= len(_BASE_KINDS):
        raise HtkFormatError(f"unknown HTK base parameter kind {base}")
    return _BASE_KINDS[base] + "".join(
        suffix for flag, suffix in _QUALIFIERS if parm_kind & flag
    )


class HtkFile:
    """An HTK parameter file on a binary stream; data are stored big-endian."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream
        self.header = HtkHeader()

    def read_header(self) -> HtkHeader:
        raw = self.stream.read(_HEADER.size)
        if len(raw) != _HEADER.size:
            raise HtkFormatError("truncated HTK header")
        header = HtkHeader(*_HEADER.unpack(raw))
        if (
            header.samp_size <= 0
            or header.samp_size > 5000
            or header.n_samples <= 0
            or header.samp_period <= 0
            or header.samp_period > 1000000
        ):
            raise HtkFormatError("HTK header is not readable")
        self.header = header
        return header

    def write_header(self) -> None:
        h = self.header
        self.stream.write(
            _HEADER.pack(h.n_samples, h.samp_period, h.samp_size, h.parm_kind)
        )

    def num_coefs(self) -> int:
        return self.header.samp_size // _FLOAT.size

    def read_next_vector(self) -> np.ndarray:
        """Read the next frame; fewer values come back at the end of the stream."""
        raw = self.stream.read(_FLOAT.size * self.num_coefs())
        count = len(raw) // _FLOAT.size
        return np.array(
            struct.unpack(f">{count}f", raw[: count * _FLOAT.size]), dtype=float
        )

    def write_next_vector(self, data: Sequence[float]) -> int:
        """Write one frame of ``num_coefs()`` values and return how many were written."""
        n = self.num_coefs()
        values = [float(v) for v in data][:n]
        if len(values) < n:
            raise ValueError(f"expected {n} coefficients, got {len(values)}")
        self.stream.write(struct.pack(f">{n}f", *values))
        return n

    def describe(self) -> str:
        h = self.header
        return "\n".join(
            [
                f"  nSamples: {h.n_samples}",
                f"  sampPeriod: {h.samp_period / 10.0} us",
                f"  SampSize: {h.samp_size}",
                f"  parmKind: {parm_kind_to_str(h.parm_kind)}",
                f"  Num Coefs: {self.num_coefs()}",
                f"  Machine type: {sys.byteorder} endian.",
            ]
        )