import math
from dataclasses import dataclass

import numpy as np
import pytest

from phonalign.fa_classifier import (
    PHI_SIZE,
    AlignmentClassifier,
    gamma,
    gaussian,
)


@dataclass
class Utterance:
    scores: np.ndarray
    distances: np.ndarray
    phonemes: list


def _pure_utterance():
    scores = np.zeros((12, 3))
    scores[0:4, 0] = 1.0
    scores[4:8, 1] = 1.0
    scores[8:12, 2] = 1.0
    distances = np.arange(48, dtype=float).reshape(12, 4) / 10.0
    return Utterance(scores, distances, [0, 1, 2])


def _classifier(tmp_path, pa1_c=5.0, beta3=1.0, min_sqrt_gamma=1.0):
    clf = AlignmentClassifier(10, 20, 50, pa1_c, 1.0, 1.0, beta3, min_sqrt_gamma)
    stats = tmp_path / "stats.txt"
    stats.write_text("2 3\n3 3 3\n1 1 1\n")
    clf.load_phoneme_stats(stats, 3)
    return clf


def test_gamma_is_zero_within_epsilon_and_symmetric():
    assert gamma([0, 5, 9], [1, 4, 10]) == 0.0
    assert gamma([0, 4, 8], [0, 7, 12]) == gamma([0, 7, 12], [0, 4, 8])
    assert gamma([0, 4, 8], [0, 7, 12]) > 0.0


def test_gaussian_symmetry_and_scaling():
    assert gaussian(5.0, 3.0, 1.5) == pytest.approx(gaussian(1.0, 3.0, 1.5))
    assert gaussian(3.0, 3.0, 1.5) > gaussian(4.0, 3.0, 1.5)
    assert gaussian(0.0, 0.0, 2.0) == pytest.approx(gaussian(0.0, 0.0, 1.0) / 2)


def test_save_load_round_trip(tmp_path):
    clf = _classifier(tmp_path)
    clf.w = np.array([0.5, -1.25, 2.0, 0.0, 3.5, 1e-3, -7.0])
    path = tmp_path / "w.txt"
    clf.save(path)
    other = _classifier(tmp_path)
    other.load(path)
    assert np.array_equal(other.w, clf.w)


def test_load_rejects_wrong_size(tmp_path):
    path = tmp_path / "w.txt"
    path.write_text("3\n1 2 3\n")
    clf = _classifier(tmp_path)
    with pytest.raises(ValueError):
        clf.load(path)


def test_load_phoneme_stats_checks_count(tmp_path):
    clf = AlignmentClassifier(10, 20, 50, 1.0, 1.0, 1.0, 1.0, 1.0)
    stats = tmp_path / "stats.txt"
    stats.write_text("2 2\n3 4\n1 1\n")
    with pytest.raises(ValueError):
        clf.load_phoneme_stats(stats, 3)
    clf.load_phoneme_stats(stats, 2)
    assert list(clf.phoneme_length_mean) == [3.0, 4.0]
    assert list(clf.phoneme_length_std) == [1.0, 1.0]


def test_phi_1_features(tmp_path):
    clf = AlignmentClassifier(10, 20, 50, 1.0, 0.5, 2.0, 1.0, 1.0)
    stats = tmp_path / "stats.txt"
    stats.write_text("2 3\n3 3 3\n1 1 1\n")
    clf.load_phoneme_stats(stats, 3)
    x = _pure_utterance()
    v = clf.phi_1(x, 1, 7, 3)
    assert v.shape == (PHI_SIZE - 1,)
    assert np.allclose(v[1:5], 0.5 * x.distances[5])
    assert v[5] == pytest.approx(2.0 * gaussian(3, 3.0, 1.0))
    assert v[0] == pytest.approx(clf.phi_1(x, 1, 7, 4)[0])


def test_phi_1_rejects_segment_before_start(tmp_path):
    clf = _classifier(tmp_path)
    with pytest.raises(ValueError):
        clf.phi_1(_pure_utterance(), 0, 2, 5)


def test_phi_2_zero_for_equal_rate_and_scales_with_beta3(tmp_path):
    x = _pure_utterance()
    clf = _classifier(tmp_path)
    doubled = _classifier(tmp_path, beta3=2.0)
    assert clf.phi_2(x, 1, 7, 4, 4) == pytest.approx(0.0)
    assert doubled.phi_2(x, 1, 7, 2, 5) == pytest.approx(2 * clf.phi_2(x, 1, 7, 2, 5))


def test_phi_score_component_of_true_alignment(tmp_path):
    clf = _classifier(tmp_path)
    v = clf.phi(_pure_utterance(), [0, 4, 8])
    assert v.shape == (PHI_SIZE,)
    assert v[0] == pytest.approx(3.0)


def test_predict_finds_pure_boundaries(tmp_path):
    clf = _classifier(tmp_path)
    clf.w = np.array([1.0, 0, 0, 0, 0, 0, 0])
    confidence, y_hat = clf.predict(_pure_utterance())
    assert y_hat == [0, 4, 8]
    assert confidence == pytest.approx(1.0)


def test_predict_result_is_well_formed(tmp_path):
    clf = _classifier(tmp_path)
    rng = np.random.default_rng(3)
    x = _pure_utterance()
    x.scores = rng.random((12, 3))
    clf.w = rng.normal(size=PHI_SIZE)
    _, y_hat = clf.predict(x)
    assert len(y_hat) == 3
    assert y_hat[0] == 0
    assert all(a < b for a, b in zip(y_hat, y_hat[1:]))
    assert 12 - clf.max_num_frames <= y_hat[-1] <= 12 - clf.min_num_frames


def test_predict_raises_when_utterance_too_short(tmp_path):
    clf = _classifier(tmp_path)
    x = _pure_utterance()
    x.scores = x.scores[:4]
    x.distances = x.distances[:4]
    with pytest.raises(ValueError):
        clf.predict(x)


def test_update_skips_when_gamma_small(tmp_path):
    clf = _classifier(tmp_path, min_sqrt_gamma=1.0)
    loss = clf.update(_pure_utterance(), [0, 4, 8], [0, 4, 8])
    assert loss == 0.0
    assert clf.w_changed is False
    assert not clf.w.any()


def test_update_reaches_margin_with_large_c(tmp_path):
    clf = _classifier(tmp_path, pa1_c=1e6, min_sqrt_gamma=0.1)
    x = _pure_utterance()
    y, y_hat = [0, 4, 8], [0, 6, 8]
    target = math.sqrt(gamma(y, y_hat))
    loss = clf.update(x, y, y_hat)
    a = (clf.phi(x, y) - clf.phi(x, y_hat)) / len(y)
    assert loss == pytest.approx(target)
    assert float(clf.w @ a) == pytest.approx(target)
    assert clf.w_changed is True
    assert not clf.w_old.any()


def test_update_step_is_capped_by_c(tmp_path):
    clf = _classifier(tmp_path, pa1_c=1e-3, min_sqrt_gamma=0.1)
    x = _pure_utterance()
    y, y_hat = [0, 4, 8], [0, 6, 8]
    clf.update(x, y, y_hat)
    a = (clf.phi(x, y) - clf.phi(x, y_hat)) / len(y)
    assert np.allclose(clf.w, 1e-3 * a)