"""Utterances and datasets for forced alignment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

import numpy as np

from .phonemes import PhonemeMap
from .textio import read_file_list, read_matrix, read_start_times

PathLike = Union[str, Path]

log = logging.getLogger(__name__)


def normalize_scores(matrix) -> np.ndarray:
    """Rescale each row linearly so that its minimum is 0 and its maximum 1."""
    m = np.asarray(matrix, dtype=float)
    low = m.min(axis=1, keepdims=True)
    high = m.max(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        return (m - low) / (high - low)


def read_phoneme_sequence(path: PathLike, phoneme_map: PhonemeMap) -> list[int]:
    """Read a file of whitespace-separated phoneme symbols as indices."""
    return phoneme_map.encode(Path(path).read_text())


def phoneme_sequence_from_string(text: str, phoneme_map: PhonemeMap) -> list[int]:
    return phoneme_map.encode(text)


@dataclass
class SpeechUtterance:
    """Frame scores, frame distances and the phoneme sequence of one utterance."""

    scores: np.ndarray
    distances: np.ndarray
    phonemes: list[int] = field(default_factory=list)
    silence_offset: int = 0
    last_silence: int = 0

    @classmethod
    def read(
        cls,
        scores_path: PathLike,
        dists_path: PathLike,
        phonemes: str,
        phoneme_map: PhonemeMap,
        single_file_mode: bool = False,
    ) -> "SpeechUtterance":
        """Load an utterance; ``phonemes`` is the phoneme string itself in
        single-file mode and the path of a phoneme file otherwise."""
        scores = normalize_scores(read_matrix(scores_path))
        distances = read_matrix(dists_path)
        if single_file_mode:
            sequence = phoneme_sequence_from_string(phonemes, phoneme_map)
        else:
            sequence = read_phoneme_sequence(phonemes, phoneme_map)
        return cls(scores=scores, distances=distances, phonemes=sequence)

    def feature_size(self) -> int:
        return self.scores.shape[1] + self.distances.shape[1] + 1


def _read_list(path: PathLike) -> list[str]:
    try:
        return read_file_list(path)
    except OSError:
        log.error("Unable to open file list: %s", path)
        return []


def _strip_silence(
    x: SpeechUtterance, y: list[int]
) -> tuple[SpeechUtterance, list[int]]:
    """Drop the leading and trailing silence phonemes and their frames."""
    if len(y) < 3 or len(x.phonemes) < 3:
        raise ValueError("removing silence needs at least three phonemes")
    first, last = y[1], y[-1]
    height = x.scores.shape[0]
    if not 0 <= first <= last <= height or last > x.distances.shape[0]:
        raise ValueError(
            f"silence boundaries {first}..{last} do not fit {height} frames"
        )
    x.silence_offset = first
    x.last_silence = last
    x.scores = x.scores[first:last].copy()
    x.distances = x.distances[first:last].copy()
    x.phonemes = list(x.phonemes[1:-1])
    return x, [start - first for start in y[1:-1]]


class AlignmentDataset:
    """Sequential reader over parallel lists of scores, distances, phonemes
    and (optionally) start-time files."""

    def __init__(
        self,
        scores_filelist: PathLike,
        dists_filelist: PathLike,
        phonemes_filelist: PathLike,
        start_times_filelist: PathLike,
        phoneme_map: PhonemeMap,
    ) -> None:
        self._phoneme_map = phoneme_map
        self._scores_files = _read_list(scores_filelist)
        self._dists_files = _read_list(dists_filelist)
        self._phonemes_files = _read_list(phonemes_filelist)
        if str(start_times_filelist) == "null":
            log.info("no start-times were given for error calculation")
            self._read_labels = False
            self._start_times_files: list[str] = []
        else:
            self._read_labels = True
            self._start_times_files = _read_list(start_times_filelist)
        self._single_file_mode = (
            len(self._scores_files) == 1
            and len(self._dists_files) == 1
            and len(self._phonemes_files) > 1
            and not self._read_labels
        )
        self._current = 0

    def __len__(self) -> int:
        return len(self._phonemes_files)

    def labels_given(self) -> bool:
        return self._read_labels

    def read(self, remove_silence: bool = False) -> tuple[SpeechUtterance, list[int]]:
        """Return the next utterance and its start times.

        Without labels the start times are all zero, one per phoneme.
        """
        if self._current >= len(self):
            raise IndexError("no more utterances in the dataset")
        k = self._current
        source = 0 if self._single_file_mode else k
        log.info("current file=%d %s", k, self._scores_files[source])
        x = SpeechUtterance.read(
            self._scores_files[source],
            self._dists_files[source],
            self._phonemes_files[k],
            self._phoneme_map,
            self._single_file_mode,
        )
        if self._read_labels:
            y = read_start_times(self._start_times_files[k])
        else:
            y = [0] * len(x.phonemes)
        self._current += 1
        if remove_silence:
            x, y = _strip_silence(x, y)
        return x, y