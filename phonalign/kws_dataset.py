"""Utterances and datasets for keyword spotting."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .fa_dataset import normalize_scores
from .phonemes import PhonemeMap
from .textio import read_file_list, read_matrix, read_start_times

PathLike = Union[str, Path]

DIST_EXT = ".dist"
START_TIMES_EXT = ".start_times"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

log = logging.getLogger(__name__)


def _atoi(token: str) -> int:
    match = _LEADING_INT.match(token)
    return int(match.group(1)) if match else 0


def load_dist_stats(path: PathLike) -> tuple[np.ndarray, np.ndarray]:
    """Return the distance-feature means (row 0) and deviations (row 1).

    A file that cannot be opened gives four zero means and four unit deviations.
    """
    try:
        stats = read_matrix(path)
    except OSError:
        log.warning("Unable to load dist stats from %s", path)
        return np.zeros(4), np.ones(4)
    if stats.shape[0] < 2:
        raise ValueError(f"{path}: dist stats need two rows")
    log.info("load feature statistics from %s", path)
    return stats[0].copy(), stats[1].copy()


def parse_keyword(text: str, phoneme_map: PhonemeMap) -> list[int]:
    """Turn a keyword's phoneme string into phoneme indices."""
    return phoneme_map.encode(text)


def _parse_alignment(text: str, keyword_length: int) -> tuple[list[int], int]:
    """Split an alignment line into start frames and the keyword's end frame."""
    starts: list[int] = []
    end_frame: Optional[int] = None
    for token in text.split():
        if len(starts) == keyword_length:
            end_frame = _atoi(token)
        else:
            starts.append(_atoi(token))
    if end_frame is None:
        raise ValueError(
            f"alignment {text!r} needs {keyword_length} start frames and an end frame"
        )
    return starts, end_frame


def _start_times_or_empty(path: PathLike) -> list[int]:
    try:
        return read_start_times(path)
    except OSError:
        log.info("unable to read start times from %s", path)
        return []


@dataclass
class KeywordUtterance:
    """Frame scores and frame distances of one utterance."""

    scores: np.ndarray
    distances: np.ndarray

    @classmethod
    def read(cls, scores_path: PathLike, dists_path: PathLike) -> "KeywordUtterance":
        """Load an utterance, normalising every score row to [0, 1]."""
        scores = normalize_scores(read_matrix(scores_path))
        distances = read_matrix(dists_path)
        return cls(scores=scores, distances=distances)

    def feature_size(self) -> int:
        return self.scores.shape[1] + self.distances.shape[1] + 1

    def _without_silence(self, start_times: Sequence[int]) -> "KeywordUtterance":
        """Keep only the frames between the second and the last start time."""
        if len(start_times) < 2:
            raise ValueError("removing silence needs at least two start times")
        first, last = start_times[1], start_times[-1]
        rows = min(self.scores.shape[0], self.distances.shape[0])
        if not 0 <= first <= last <= rows:
            raise ValueError(
                f"silence boundaries {first}..{last} do not fit {rows} frames"
            )
        return KeywordUtterance(
            scores=self.scores[first:last].copy(),
            distances=self.distances[first:last].copy(),
        )


class KeywordDataset:
    """Sequential reader over utterance lists and their keywords."""

    def __init__(
        self,
        pos_filelist: Optional[PathLike],
        neg_filelist: PathLike,
        keyword_phoneme_list: PathLike,
        keyword_alignment_list: Optional[PathLike],
        phoneme_map: PhonemeMap,
    ) -> None:
        self._phoneme_map = phoneme_map
        self._pos_files = [] if pos_filelist is None else read_file_list(pos_filelist)
        self._neg_files = read_file_list(neg_filelist)
        self._keywords = read_file_list(keyword_phoneme_list)
        self._alignments = (
            []
            if keyword_alignment_list is None
            else read_file_list(keyword_alignment_list)
        )
        self._current = 0

    @classmethod
    def for_decoding(
        cls,
        neg_filelist: PathLike,
        keyword_phoneme_list: PathLike,
        phoneme_map: PhonemeMap,
    ) -> "KeywordDataset":
        """A dataset of utterances to search; when the keyword list does not
        match the file list, its first keyword is searched in every file."""
        dataset = cls(None, neg_filelist, keyword_phoneme_list, None, phoneme_map)
        if len(dataset._neg_files) != len(dataset._keywords):
            if not dataset._keywords:
                raise ValueError(f"{keyword_phoneme_list}: no keywords listed")
            keyword = dataset._keywords[0]
            log.info("all files are checked against the same keyword /%s/", keyword)
            dataset._keywords = [keyword] * len(dataset._neg_files)
        return dataset

    def __len__(self) -> int:
        return len(self._keywords)

    def _next_index(self) -> int:
        if self._current >= len(self):
            raise IndexError("no more utterances in the dataset")
        return self._current

    def read_pair(
        self, scores_ext: str = ".scores", remove_silence: bool = False
    ) -> tuple[KeywordUtterance, KeywordUtterance, list[int], list[int], int]:
        """Return ``(x_pos, x_neg, keyword, start_frames, end_frame)`` for the
        next training pair; the alignment refers to the positive utterance."""
        k = self._next_index()
        pos, neg = self._pos_files[k], self._neg_files[k]
        log.info("current file=%d pos:%s neg:%s", k, pos, neg)
        x_p = KeywordUtterance.read(pos + scores_ext, pos + DIST_EXT)
        x_n = KeywordUtterance.read(neg + scores_ext, neg + DIST_EXT)
        s_p = _start_times_or_empty(pos + START_TIMES_EXT)
        s_n = _start_times_or_empty(neg + START_TIMES_EXT)

        keyword = parse_keyword(self._keywords[k], self._phoneme_map)
        starts, end_frame = _parse_alignment(self._alignments[k], len(keyword))

        if remove_silence:
            x_p = x_p._without_silence(s_p)
            offset = s_p[1]
            starts = [start - offset for start in starts]
            end_frame -= offset
            x_n = x_n._without_silence(s_n)

        self._current += 1
        height = x_p.scores.shape[0]
        if end_frame >= height:
            end_frame = height - 1
        return x_p, x_n, keyword, starts, end_frame

    def read_single(
        self, scores_ext: str = ".scores", remove_silence: bool = False
    ) -> tuple[KeywordUtterance, list[int], list[int], int, int]:
        """Return ``(x, keyword, start_times, end_frame, frame_offset)`` for the
        next utterance to search. ``frame_offset`` is the number of leading
        frames dropped with the silence."""
        k = self._next_index()
        name = self._neg_files[k]
        log.info("current file=%d %s", k, name)
        x = KeywordUtterance.read(name + scores_ext, name + DIST_EXT)
        start_times = _start_times_or_empty(name + START_TIMES_EXT)
        keyword = parse_keyword(self._keywords[k], self._phoneme_map)

        frame_offset = 0
        if remove_silence:
            x = x._without_silence(start_times)
            frame_offset = start_times[1]
            start_times = [t - frame_offset for t in start_times[1:-1]]

        end_frame = x.scores.shape[0] - 1
        self._current += 1
        return x, keyword, start_times, end_frame, frame_offset