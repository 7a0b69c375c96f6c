import numpy as np
import pytest

from phonalign.kws_classifier import KeywordClassifier
from phonalign.kws_dataset import KeywordUtterance
from phonalign.kws_decode import main
from phonalign.textio import write_vector

FRAMES = 12


def _write_matrix(path, matrix):
    m = np.asarray(matrix, dtype=float)
    h, w = m.shape
    rows = "\n".join(" ".join(repr(float(v)) for v in row) for row in m)
    path.write_text(f"{h} {w}\n{rows}\n")


def _utterance(tmp_path, name, seed):
    rng = np.random.default_rng(seed)
    _write_matrix(tmp_path / f"{name}.scores", rng.random((FRAMES, 3)))
    _write_matrix(tmp_path / f"{name}.dist", rng.random((FRAMES, 4)))
    (tmp_path / f"{name}.start_times").write_text("0 2 6 10\n")
    return str(tmp_path / name)


@pytest.fixture
def workdir(tmp_path):
    (tmp_path / "phonemes.txt").write_text("sil aa b\n")
    _write_matrix(tmp_path / "stats.txt", [[3.0, 3.0, 3.0], [1.0, 1.0, 1.0]])
    write_vector(tmp_path / "clf.txt", [1, 0, 0, 0, 0, 0, 0])
    first = _utterance(tmp_path, "u1", 0)
    second = _utterance(tmp_path, "u2", 1)
    (tmp_path / "files.txt").write_text(f"{first}\n{second}\n")
    (tmp_path / "keywords.txt").write_text("aa b\n")
    return tmp_path


def _argv(tmp_path, *options):
    return [
        "-min_phoneme_length", "10",
        "-max_phoneme_length", "50",
        *options,
        str(tmp_path / "files.txt"),
        str(tmp_path / "keywords.txt"),
        str(tmp_path / "phonemes.txt"),
        str(tmp_path / "stats.txt"),
        str(tmp_path / "clf.txt"),
    ]


def _field(lines, prefix):
    return next(line for line in lines if line.startswith(prefix)).split("=", 1)[1]


def test_decode_reports_alignment(workdir, capsys):
    assert main(_argv(workdir)) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[-1] == "Done."
    assert "keyword[0]=/aa b /" in lines
    assert "keyword[1]=/aa b /" in lines

    values = [int(v) for v in _field(lines, "alignment[0]=").split()]
    assert len(values) == 3
    start0, start1, end = values
    assert 0 <= start0 < start1 <= end < FRAMES

    confidence = float(_field(lines, "confidence[0]="))
    assert 0.0 <= confidence <= 1.0

    classifier = KeywordClassifier(10, 10, 50, 0.0, 0.01, 1.0, 1.0)
    classifier.load(workdir / "clf.txt")
    classifier.load_phoneme_stats(workdir / "stats.txt", 3)
    x = KeywordUtterance.read(workdir / "u1.scores", workdir / "u1.dist")
    expected = classifier.confidence_keyword(x, [1, 2], [start0, start1], end)
    assert confidence == pytest.approx(expected, rel=1e-4, abs=1e-6)


def test_decode_with_silence_removed_adds_offset(workdir, capsys):
    assert main(_argv(workdir, "-remove_silence")) == 0
    lines = capsys.readouterr().out.splitlines()
    values = [int(v) for v in _field(lines, "alignment[0]=").split()]
    assert all(2 <= v < 10 for v in values)
    assert values == sorted(values)


def test_decode_prints_phi(workdir, capsys):
    assert main(_argv(workdir)) == 0
    lines = capsys.readouterr().out.splitlines()
    phi = [float(v) for v in _field(lines, "phi").split()]
    assert len(phi) == 7
    confidence = float(_field(lines, "confidence[0]="))
    assert phi[0] == pytest.approx(confidence, rel=1e-4, abs=1e-6)


def test_decode_without_arguments_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_decode_missing_silence_symbol_fails(workdir, capsys):
    (workdir / "phonemes.txt").write_text("aa b c\n")
    assert main(_argv(workdir)) == 1
    assert "silence symbol" in capsys.readouterr().err