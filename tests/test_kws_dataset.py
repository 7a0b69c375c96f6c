import numpy as np
import pytest

from phonalign.fa_dataset import normalize_scores
from phonalign.kws_dataset import (
    KeywordDataset,
    KeywordUtterance,
    load_dist_stats,
    parse_keyword,
)
from phonalign.phonemes import PhonemeMap, PhonemeMapError


def _write_matrix(path, matrix):
    m = np.asarray(matrix, dtype=float)
    h, w = m.shape
    rows = "\n".join(" ".join(repr(float(v)) for v in row) for row in m)
    path.write_text(f"{h} {w}\n{rows}\n")


@pytest.fixture
def phoneme_map():
    return PhonemeMap(["sil", "aa", "t", "b"])


def _utterance(tmp_path, name, frames, seed, start_times=None):
    rng = np.random.default_rng(seed)
    scores = rng.random((frames, 4))
    dists = rng.random((frames, 4))
    _write_matrix(tmp_path / f"{name}.scores", scores)
    _write_matrix(tmp_path / f"{name}.dist", dists)
    if start_times is not None:
        (tmp_path / f"{name}.start_times").write_text(start_times + "\n")
    return str(tmp_path / name), scores, dists


def test_load_dist_stats_missing_file_gives_defaults(tmp_path):
    mean, std = load_dist_stats(tmp_path / "absent.txt")
    assert mean.tolist() == [0.0, 0.0, 0.0, 0.0]
    assert std.tolist() == [1.0, 1.0, 1.0, 1.0]


def test_load_dist_stats_reads_rows(tmp_path):
    path = tmp_path / "stats.txt"
    _write_matrix(path, [[1.5, 2.5], [0.5, 0.25]])
    mean, std = load_dist_stats(path)
    assert mean.tolist() == [1.5, 2.5]
    assert std.tolist() == [0.5, 0.25]


def test_parse_keyword_applies_alias(phoneme_map):
    assert parse_keyword("aa del b", phoneme_map) == [1, 2, 3]


def test_parse_keyword_rejects_unknown(phoneme_map):
    with pytest.raises(PhonemeMapError):
        parse_keyword("aa zz", phoneme_map)


def test_utterance_read_normalises_scores(tmp_path):
    base, scores, dists = _utterance(tmp_path, "u", 5, 1)
    x = KeywordUtterance.read(base + ".scores", base + ".dist")
    np.testing.assert_allclose(x.scores, normalize_scores(scores))
    np.testing.assert_allclose(x.distances, dists)
    assert x.scores.min(axis=1).tolist() == [0.0] * 5
    assert x.feature_size() == 4 + 4 + 1


def test_for_decoding_repeats_first_keyword(tmp_path, phoneme_map):
    a, _, _ = _utterance(tmp_path, "a", 6, 2)
    b, _, _ = _utterance(tmp_path, "b", 7, 3)
    (tmp_path / "files.txt").write_text(f"{a}\n{b}\n")
    (tmp_path / "kw.txt").write_text("aa b\n")
    dataset = KeywordDataset.for_decoding(
        tmp_path / "files.txt", tmp_path / "kw.txt", phoneme_map
    )
    assert len(dataset) == 2
    first = dataset.read_single()
    second = dataset.read_single()
    assert first[1] == second[1] == [1, 3]
    assert first[3] == 5
    assert second[3] == 6
    with pytest.raises(IndexError):
        dataset.read_single()


def test_for_decoding_without_keywords_fails(tmp_path, phoneme_map):
    a, _, _ = _utterance(tmp_path, "a", 6, 2)
    (tmp_path / "files.txt").write_text(f"{a}\n")
    (tmp_path / "kw.txt").write_text("\n")
    with pytest.raises(ValueError):
        KeywordDataset.for_decoding(
            tmp_path / "files.txt", tmp_path / "kw.txt", phoneme_map
        )


def test_missing_file_list_raises(tmp_path, phoneme_map):
    with pytest.raises(OSError):
        KeywordDataset.for_decoding(
            tmp_path / "absent.txt", tmp_path / "absent_kw.txt", phoneme_map
        )


def test_read_single_removes_silence(tmp_path, phoneme_map):
    base, scores, _ = _utterance(tmp_path, "u", 10, 4, "0 2 5 8")
    (tmp_path / "files.txt").write_text(base + "\n")
    (tmp_path / "kw.txt").write_text("aa\n")
    dataset = KeywordDataset.for_decoding(
        tmp_path / "files.txt", tmp_path / "kw.txt", phoneme_map
    )
    x, keyword, starts, end_frame, offset = dataset.read_single(".scores", True)
    assert keyword == [1]
    assert offset == 2
    assert starts == [0, 3]
    assert end_frame == x.scores.shape[0] - 1
    np.testing.assert_allclose(x.scores, normalize_scores(scores)[2:8])


def test_read_single_keeps_start_times(tmp_path, phoneme_map):
    base, _, _ = _utterance(tmp_path, "u", 10, 4, "0 2 5 8")
    (tmp_path / "files.txt").write_text(base + "\n")
    (tmp_path / "kw.txt").write_text("aa\n")
    dataset = KeywordDataset.for_decoding(
        tmp_path / "files.txt", tmp_path / "kw.txt", phoneme_map
    )
    _, _, starts, end_frame, offset = dataset.read_single()
    assert starts == [0, 2, 5, 8]
    assert offset == 0
    assert end_frame == 9


def _pair_dataset(tmp_path, phoneme_map, alignment):
    pos, pos_scores, _ = _utterance(tmp_path, "p", 10, 5, "0 2 8")
    neg, neg_scores, _ = _utterance(tmp_path, "n", 9, 6, "0 1 7")
    (tmp_path / "pos.txt").write_text(pos + "\n")
    (tmp_path / "neg.txt").write_text(neg + "\n")
    (tmp_path / "kw.txt").write_text("aa b\n")
    (tmp_path / "align.txt").write_text(alignment + "\n")
    dataset = KeywordDataset(
        tmp_path / "pos.txt",
        tmp_path / "neg.txt",
        tmp_path / "kw.txt",
        tmp_path / "align.txt",
        phoneme_map,
    )
    return dataset, pos_scores, neg_scores


def test_read_pair_parses_alignment(tmp_path, phoneme_map):
    dataset, _, _ = _pair_dataset(tmp_path, phoneme_map, "1 3 6")
    assert len(dataset) == 1
    x_p, x_n, keyword, starts, end_frame = dataset.read_pair()
    assert keyword == [1, 3]
    assert starts == [1, 3]
    assert end_frame == 6
    assert x_p.scores.shape[0] == 10
    assert x_n.scores.shape[0] == 9


def test_read_pair_clips_end_frame(tmp_path, phoneme_map):
    dataset, _, _ = _pair_dataset(tmp_path, phoneme_map, "1 3 20")
    x_p, _, _, _, end_frame = dataset.read_pair()
    assert end_frame == x_p.scores.shape[0] - 1


def test_read_pair_removes_silence(tmp_path, phoneme_map):
    dataset, pos_scores, neg_scores = _pair_dataset(tmp_path, phoneme_map, "3 5 7")
    x_p, x_n, _, starts, end_frame = dataset.read_pair(".scores", True)
    assert starts == [1, 3]
    assert end_frame == 5
    np.testing.assert_allclose(x_p.scores, normalize_scores(pos_scores)[2:8])
    np.testing.assert_allclose(x_n.scores, normalize_scores(neg_scores)[1:7])


def test_read_pair_short_alignment_fails(tmp_path, phoneme_map):
    dataset, _, _ = _pair_dataset(tmp_path, phoneme_map, "1 3")
    with pytest.raises(ValueError):
        dataset.read_pair()