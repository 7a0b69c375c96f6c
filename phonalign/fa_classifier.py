"""Discriminative forced-alignment classifier trained with Passive-Aggressive updates.

An utterance handed to the classifier is any object with three attributes:
``scores`` (frames x phonemes matrix, already normalised to [0, 1] per frame),
``distances`` (frames x 4 matrix) and ``phonemes`` (sequence of phoneme
indices). A label is the list of start frames, one per phoneme.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .textio import read_matrix, read_vector, write_vector

PathLike = Union[str, Path]

PHI_SIZE = 7
GAMMA_EPSILON = 1
_VERY_SMALL = -1000000.0
_PI = 3.141529

log = logging.getLogger(__name__)


def gamma(y: Sequence[int], y_hat: Sequence[int]) -> float:
    """Mean of ``max(|y_hat_i - y_i| - 1, 0)`` over the boundaries of ``y``."""
    total = 0.0
    for true, pred in zip(y, y_hat):
        excess = abs(float(pred) - float(true)) - GAMMA_EPSILON
        if excess > 0.0:
            total += excess
    return total / float(len(y))


def gaussian(x: float, mean: float, std: float) -> float:
    """Gaussian density used for the phoneme-duration feature."""
    return 1 / math.sqrt(2 * _PI) / std * math.exp(-((x - mean) * (x - mean)) / (2 * std * std))


class AlignmentClassifier:
    """Linear scorer over alignment features with a dynamic-programming argmax."""

    def __init__(
        self,
        frame_rate: int,
        min_phoneme_length: float,
        max_phoneme_length: float,
        pa1_c: float,
        beta1: float,
        beta2: float,
        beta3: float,
        min_sqrt_gamma: float,
    ) -> None:
        self.frame_rate = frame_rate
        self.min_num_frames = int(min_phoneme_length / float(frame_rate))
        self.max_num_frames = int(max_phoneme_length / float(frame_rate))
        self.pa1_c = pa1_c
        self.beta1 = beta1
        self.beta2 = beta2
        self.beta3 = beta3
        self.min_sqrt_gamma = min_sqrt_gamma
        self.w = np.zeros(PHI_SIZE)
        self.w_old = np.zeros(PHI_SIZE)
        self.w_changed = False
        self.phoneme_length_mean = np.zeros(0)
        self.phoneme_length_std = np.zeros(0)

    # ------------------------------------------------------------------ files
    def load(self, path: PathLike) -> None:
        """Load the weight vector written by :meth:`save`."""
        w = read_vector(path)
        if w.size != PHI_SIZE:
            raise ValueError(
                f"{path}: expected {PHI_SIZE} weights, found {w.size}"
            )
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
    def phi_1(self, x, i: int, t: int, l: int) -> np.ndarray:
        """Static features of phoneme ``i`` ending at frame ``t`` with length ``l``."""
        start = t - l + 1
        if l < 1 or start < 0:
            raise ValueError(f"invalid segment: end {t}, length {l}")
        phoneme = x.phonemes[i]
        v = np.zeros(PHI_SIZE - 1)
        v[0] = float(np.sum(x.scores[start : t + 1, phoneme])) / l
        v[1:5] = self.beta1 * np.asarray(x.distances[start, 0:4], dtype=float)
        v[5] = self.beta2 * gaussian(
            l,
            self.phoneme_length_mean[phoneme],
            self.phoneme_length_std[phoneme],
        )
        return v

    def phi_2(self, x, i: int, t: int, l1: int, l2: int) -> float:
        """Speaking-rate feature between phoneme ``i`` (length ``l1``) and its predecessor."""
        mean = self.phoneme_length_mean
        v = float(l1) / mean[x.phonemes[i]] - float(l2) / mean[x.phonemes[i - 1]]
        return v * v * self.beta3

    def phi(self, x, y: Sequence[int]) -> np.ndarray:
        """Full feature vector of utterance ``x`` aligned by start frames ``y``."""
        v = np.zeros(PHI_SIZE)
        last_frame = x.scores.shape[0] - 1
        for i, start in enumerate(y):
            end = last_frame if i == len(y) - 1 else y[i + 1] - 1
            length = end - start + 1
            v[: PHI_SIZE - 1] += self.phi_1(x, i, end, length)
            if i > 0:
                v[PHI_SIZE - 1] += self.phi_2(x, i, end, length, start - y[i - 1])
        return v

    # --------------------------------------------------------------- learning
    def update(self, x, y: Sequence[int], y_hat: Sequence[int]) -> float:
        """One PA-I step towards ``y`` away from ``y_hat``; returns the loss."""
        loss = math.sqrt(gamma(y, y_hat))
        log.debug("sqrt(gamma) = %s", loss)
        if loss < self.min_sqrt_gamma:
            self.w_changed = False
            return 0.0

        a = (self.phi(x, y) - self.phi(x, y_hat)) / len(y)
        loss -= float(self.w @ a)
        log.debug("a = %s, loss = %s", a, loss)

        if loss < 0.0:
            loss = 0.0
        else:
            self.w_old = self.w.copy()
            norm2 = float(a @ a)
            tau = self.pa1_c if norm2 == 0.0 else min(loss / norm2, self.pa1_c)
            self.w = self.w + tau * a
        log.debug("w = %s", self.w)
        self.w_changed = True
        return loss

    def predict(self, x) -> tuple[float, list[int]]:
        """Return ``(confidence, start_frames)`` of the best-scoring alignment."""
        phonemes = list(x.phonemes)
        P = len(phonemes)
        T = x.scores.shape[0]
        lo, hi = self.min_num_frames, self.max_num_frames
        if P == 0 or T == 0:
            raise ValueError("cannot align an empty utterance")
        if lo > hi:
            raise ValueError("minimum phoneme length exceeds the maximum")
        L = hi + 1

        D0 = np.full((P, T, L), _VERY_SMALL)
        prev_l = np.zeros((P, T, L), dtype=int)
        prev_t = np.zeros((P, T, L), dtype=int)
        w_static = self.w[: PHI_SIZE - 1]
        w_dynamic = float(self.w[PHI_SIZE - 1])

        for t in range(max(lo, 2), min(hi, T)):
            D0[0, t, t - 1] = float(w_static @ self.phi_1(x, 0, t, t - 1))

        l2_values = np.arange(lo, hi + 1, dtype=float)
        mean = self.phoneme_length_mean
        for i in range(1, P):
            mean_prev = mean[phonemes[i - 1]]
            mean_cur = mean[phonemes[i]]
            for t in range(lo, T):
                for l1 in range(max(lo, 1), min(t, hi) + 1):
                    d1 = float(w_static @ self.phi_1(x, i, t, l1))
                    diff = float(l1) / mean_cur - l2_values / mean_prev
                    d2 = D0[i - 1, t - l1, lo : hi + 1] + w_dynamic * (
                        diff * diff * self.beta3
                    )
                    k = int(np.argmax(d2))
                    d2_max = _VERY_SMALL
                    if d2[k] > _VERY_SMALL:
                        d2_max = float(d2[k])
                        prev_l[i, t, l1] = lo + k
                        prev_t[i, t, l1] = t - l1
                    D0[i, t, l1] = d1 + d2_max

        final = D0[P - 1, T - 1, lo : hi + 1]
        k = int(np.argmax(final))
        if not final[k] > _VERY_SMALL:
            raise ValueError("no feasible alignment for this utterance")
        best = float(final[k])
        pred_l, pred_t = lo + k, T - 1

        y_hat = [0] * P
        y_hat[P - 1] = T - pred_l
        for p in range(P - 2, -1, -1):
            pred_l, pred_t = (
                int(prev_l[p + 1, pred_t, pred_l]),
                int(prev_t[p + 1, pred_t, pred_l]),
            )
            y_hat[p] = pred_t - pred_l + 1
        y_hat[0] = 0
        return best / float(P), y_hat