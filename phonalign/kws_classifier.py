"""Discriminative keyword spotter trained with Passive-Aggressive updates.

An utterance handed to the classifier is any object with ``scores``
(frames x phonemes matrix, normalised to [0, 1] per frame) and ``distances``
(frames x 4 matrix). A keyword is a sequence of phoneme indices; an alignment
is the start frame of each keyword phoneme plus the frame where the keyword
ends.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .fa_classifier import PHI_SIZE, gaussian
from .textio import read_matrix, read_vector, write_vector

PathLike = Union[str, Path]

_VERY_SMALL = -1000000.0

log = logging.getLogger(__name__)


class KeywordClassifier:
    """Linear scorer over keyword alignments with a dynamic-programming search."""

    def __init__(
        self,
        frame_rate: int,
        min_phoneme_length: float,
        max_phoneme_length: float,
        pa1_c: float,
        beta1: float,
        beta2: float,
        beta3: float,
    ) -> None:
        self.frame_rate = frame_rate
        self.min_num_frames = int(min_phoneme_length / float(frame_rate))
        self.max_num_frames = int(max_phoneme_length / float(frame_rate))
        self.pa1_c = pa1_c
        self.beta1 = beta1
        self.beta2 = beta2
        self.beta3 = beta3
        self.w = np.zeros(PHI_SIZE)
        self.w_changed = False
        self.phoneme_length_mean = np.zeros(0)
        self.phoneme_length_std = np.zeros(0)

    # ------------------------------------------------------------------ files
    def load(self, path: PathLike) -> None:
        """Load the weight vector written by :meth:`save`."""
        w = read_vector(path)
        if w.size != PHI_SIZE:
            raise ValueError(f"{path}: expected {PHI_SIZE} weights, found {w.size}")
        self.w = w

    def save(self, path: PathLike) -> None:
        write_vector(path, self.w)

    def load_phoneme_stats(
        self, path: PathLike, num_phonemes: Optional[int] = None
    ) -> None:
        """Load per-phoneme duration means (row 0) and deviations (row 1)."""
        stats = read_matrix(path)
        if stats.shape[0] < 2:
            raise ValueError(f"{path}: phoneme stats need two rows")
        mean, std = stats[0].copy(), stats[1].copy()
        if num_phonemes is not None and (
            mean.size != num_phonemes or std.size != num_phonemes
        ):
            raise ValueError(
                f"{path}: number of phonemes in phoneme stats is incorrect: "
                f"expected {num_phonemes}, found {mean.size}"
            )
        self.phoneme_length_mean = mean
        self.phoneme_length_std = std

    # --------------------------------------------------------------- features
    def phi_1(self, x, keyword: Sequence[int], i: int, t: int, l: int) -> np.ndarray:
        """Static features of keyword phoneme ``i`` ending at ``t`` with length ``l``."""
        start = t - l + 1
        if l < 1 or start < 0:
            raise ValueError(f"invalid segment: end {t}, length {l}")
        phoneme = keyword[i]
        v = np.zeros(PHI_SIZE - 1)
        v[0] = float(np.sum(x.scores[start : t + 1, phoneme])) / l
        v[1:5] = self.beta1 * np.asarray(x.distances[start, 0:4], dtype=float)
        v[5] = self.beta2 * gaussian(
            l,
            self.phoneme_length_mean[phoneme],
            self.phoneme_length_std[phoneme],
        )
        return v / len(keyword)

    def phi_2(
        self, x, keyword: Sequence[int], i: int, t: int, l1: int, l2: int
    ) -> float:
        """Speaking-rate feature between phoneme ``i`` (length ``l1``) and its predecessor."""
        mean = self.phoneme_length_mean
        v = float(l1) / mean[keyword[i]] - float(l2) / mean[keyword[i - 1]]
        return v * v * self.beta3 / len(keyword)

    def phi(
        self, x, keyword: Sequence[int], y: Sequence[int], end_frame: int
    ) -> np.ndarray:
        """Feature vector of ``keyword`` aligned at start frames ``y`` ending at ``end_frame``."""
        v = np.zeros(PHI_SIZE)
        for i, start in enumerate(y):
            end = end_frame if i == len(y) - 1 else y[i + 1] - 1
            length = end - start + 1
            v[: PHI_SIZE - 1] += self.phi_1(x, keyword, i, end, length)
            if i > 0:
                v[PHI_SIZE - 1] += self.phi_2(
                    x, keyword, i, end, length, start - y[i - 1]
                )
        return v

    def confidence_keyword(
        self, x, keyword: Sequence[int], y: Sequence[int], end_frame: int
    ) -> float:
        """Score of a given keyword alignment."""
        return float(self.w @ self.phi(x, keyword, y, end_frame))

    # --------------------------------------------------------------- learning
    def update(
        self,
        keyword: Sequence[int],
        x_p,
        s_p: Sequence[int],
        end_frame_p: int,
        x_n,
        s_n: Sequence[int],
        end_frame_n: int,
    ) -> float:
        """One PA-I step ranking the positive alignment above the negative one."""
        delta = self.phi(x_p, keyword, s_p, end_frame_p) - self.phi(
            x_n, keyword, s_n, end_frame_n
        )
        norm2 = float(delta @ delta)
        log.debug("delta_phi = %s, norm2 = %s", delta, norm2)

        loss = 1.0 - float(self.w @ delta)
        if loss <= 0.0:
            self.w_changed = False
            return 0.0

        tau = self.pa1_c if norm2 == 0.0 else min(loss / norm2, self.pa1_c)
        log.debug("loss = %s, tau = %s", loss, tau)
        self.w = self.w + tau * delta
        log.debug("w = %s", self.w)
        self.w_changed = True
        return loss

    def align_keyword(
        self, x, keyword: Sequence[int]
    ) -> tuple[float, list[int], int]:
        """Find the best placement of ``keyword`` in ``x``.

        Returns ``(confidence, start_frames, end_frame)``.
        """
        kw = [int(k) for k in keyword]
        P = len(kw)
        T = x.scores.shape[0]
        lo, hi = self.min_num_frames, self.max_num_frames
        if P == 0 or T == 0:
            raise ValueError("cannot align an empty keyword or utterance")
        if lo > hi:
            raise ValueError("minimum phoneme length exceeds the maximum")
        L = hi + 1

        D0 = np.empty((P, T, L))
        # Back-pointers are shared by all start frames.
        prev_l = np.zeros((P, T, L), dtype=int)
        prev_t = np.zeros((P, T, L), dtype=int)
        w_static = self.w[: PHI_SIZE - 1]
        w_dynamic = float(self.w[PHI_SIZE - 1])
        l2_values = np.arange(lo, hi + 1, dtype=float)
        mean = self.phoneme_length_mean

        best = _VERY_SMALL
        best_y: Optional[list[int]] = None
        best_end = 0

        for s in range(0, T - P * lo):
            D0.fill(_VERY_SMALL)
            for t in range(s + lo, min(s + hi, T)):
                length = t - s + 1
                D0[0, t, length] = float(w_static @ self.phi_1(x, kw, 0, t, length))

            for i in range(1, P):
                mean_prev = mean[kw[i - 1]]
                mean_cur = mean[kw[i]]
                for t in range(s + i * lo, min(s + i * hi, T)):
                    for l1 in range(max(lo, 1), min(t, hi) + 1):
                        d1 = float(w_static @ self.phi_1(x, kw, i, t, l1))
                        diff = float(l1) / mean_cur - l2_values / mean_prev
                        d2 = D0[i - 1, t - l1, lo : hi + 1] + w_dynamic * (
                            diff * diff * self.beta3 / P
                        )
                        k = int(np.argmax(d2))
                        d2_max = _VERY_SMALL
                        if d2[k] > _VERY_SMALL:
                            d2_max = float(d2[k])
                            prev_l[i, t, l1] = lo + k
                            prev_t[i, t, l1] = t - l1
                        D0[i, t, l1] = d1 + d2_max

            score = _VERY_SMALL
            last: Optional[tuple[int, int]] = None
            for t in range(s + (P - 1) * lo, min(s + (P - 1) * hi, T)):
                row = D0[P - 1, t, lo : hi + 1]
                k = int(np.argmax(row))
                if row[k] > score:
                    score = float(row[k])
                    last = (lo + k, t)
            if last is None:
                continue

            pred_l, pred_t = last
            end_frame = pred_t
            y_hat = [0] * P
            y_hat[P - 1] = pred_t - pred_l + 1
            for p in range(P - 2, -1, -1):
                pred_l, pred_t = (
                    int(prev_l[p + 1, pred_t, pred_l]),
                    int(prev_t[p + 1, pred_t, pred_l]),
                )
                y_hat[p] = pred_t - pred_l + 1
            y_hat[0] = s

            if score > best:
                best = score
                best_y = y_hat
                best_end = end_frame

        if best_y is None:
            raise ValueError("no feasible keyword alignment for this utterance")
        return best, best_y, best_end