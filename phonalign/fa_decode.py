"""Decode forced alignments for a dataset with a trained classifier."""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import ExitStack
from pathlib import Path
from typing import Optional, Sequence, TextIO

from .fa_classifier import AlignmentClassifier
from .fa_dataset import AlignmentDataset
from .phonemes import PhonemeMap
from .textio import format_sequence, read_file_list

NUM_CUM_LOSS_RESOLUTIONS = 8
_SEPARATOR = "=" * 82

log = logging.getLogger(__name__)


class BoundaryLossTracker:
    """Accumulates absolute boundary errors over many utterances."""

    def __init__(self, resolutions: int = NUM_CUM_LOSS_RESOLUTIONS) -> None:
        self.resolutions = resolutions
        self.num_boundaries = 0
        self.total_loss = 0
        self._within = {t: 0 for t in range(1, resolutions + 1)}

    def add(self, y: Sequence[int], y_hat: Sequence[int]) -> float:
        """Record one utterance and return its mean boundary error in frames."""
        if not y:
            raise ValueError("no boundaries to compare")
        if len(y_hat) < len(y):
            raise ValueError("prediction has fewer boundaries than the labels")
        file_loss = 0
        for true, pred in zip(y, y_hat):
            loss = abs(true - pred)
            file_loss += loss
            for tolerance in self._within:
                if loss <= tolerance:
                    self._within[tolerance] += 1
        self.total_loss += file_loss
        self.num_boundaries += len(y)
        return file_loss / float(len(y))

    def cumulative_loss(self) -> float:
        if self.num_boundaries == 0:
            raise ValueError("no boundaries recorded")
        return self.total_loss / float(self.num_boundaries)

    def percent_within(self, tolerance: int) -> float:
        """Percentage of boundaries whose error is at most ``tolerance`` frames."""
        if tolerance not in self._within:
            raise ValueError(
                f"tolerance must be between 1 and {self.resolutions} frames"
            )
        if self.num_boundaries == 0:
            raise ValueError("no boundaries recorded")
        return 100.0 * self._within[tolerance] / float(self.num_boundaries)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fa-decode", description="Forced Alignment based on Passive-Aggressive"
    )
    parser.add_argument("-frame_rate", type=int, default=10,
                        help="frame rate (shift) in msec [10]")
    parser.add_argument("-min_phoneme_length", type=float, default=20.0,
                        help="min. phoneme duration in msec [20]")
    parser.add_argument("-max_phoneme_length", type=float, default=330.0,
                        help="max. phoneme duration in msec [330]")
    parser.add_argument("-silence_symbol", default="sil", help="silence symbol [sil]")
    parser.add_argument("-remove_silence", action="store_true",
                        help="remove pre/post silence from data")
    parser.add_argument("-beta1", type=float, default=1.0,
                        help="weight of the distance feature")
    parser.add_argument("-beta2", type=float, default=1.0,
                        help="weight of the duration feature")
    parser.add_argument("-beta3", type=float, default=1.0,
                        help="weight of the speaking rate feature")
    parser.add_argument("-output_align", default="",
                        help="file list where the forced alignment is written")
    parser.add_argument("-output_confidence", default="",
                        help="single file where the forced alignment confidence is written")
    parser.add_argument(
        "files", nargs="*", metavar="FILE",
        help="scores_filelist dists_filelist phonemes_filelist "
             "start_times_filelist|null phonemes phoneme-stats classifier",
    )
    return parser


def _open_confidence(path: str, stack: ExitStack) -> Optional[TextIO]:
    if not path:
        return None
    try:
        return stack.enter_context(open(path, "w"))
    except OSError:
        log.error("unable to open %s for writing", path)
        return None


def _write_alignment(path: str, y_hat: Sequence[int]) -> None:
    try:
        Path(path).write_text("".join(f"{start}\n" for start in y_hat))
    except OSError:
        log.error("unable to write alignment to %s", path)


def _run(args: argparse.Namespace) -> int:
    (scores_fl, dists_fl, phonemes_fl, start_times_fl,
     phonemes_path, stats_path, classifier_path) = args.files[:7]

    phoneme_map = PhonemeMap.load(phonemes_path, args.silence_symbol)
    classifier = AlignmentClassifier(
        args.frame_rate, args.min_phoneme_length, args.max_phoneme_length,
        0.0, args.beta1, args.beta2, args.beta3, 0.0,
    )
    classifier.load(classifier_path)
    classifier.load_phoneme_stats(stats_path, len(phoneme_map))

    dataset = AlignmentDataset(
        scores_fl, dists_fl, phonemes_fl, start_times_fl, phoneme_map
    )
    align_files = (
        read_file_list(args.output_align, missing_ok=True) if args.output_align else []
    )
    tracker = BoundaryLossTracker()

    with ExitStack() as stack:
        confidence_out = _open_confidence(args.output_confidence, stack)
        for i in range(len(dataset)):
            print(_SEPARATOR)
            x, y = dataset.read(args.remove_silence)
            confidence, y_hat = classifier.predict(x)
            print(f"phonemes={format_sequence(phoneme_map.decode(x.phonemes))}")
            if dataset.labels_given():
                print(f"alignment= {format_sequence(y)}")
            print(f"predicted= {format_sequence(y_hat)}")
            print(f"confidence= {_fmt(confidence)}")

            if args.output_align:
                if i < len(align_files):
                    _write_alignment(align_files[i], y_hat)
                else:
                    log.error("no output alignment file listed for utterance %d", i)
            if confidence_out is not None:
                confidence_out.write(f"{_fmt(confidence)}\n")

            if dataset.labels_given():
                file_loss = tracker.add(y, y_hat)
                print(f"File loss = {_fmt(file_loss)}")
                print(f"Cum loss = {_fmt(tracker.cumulative_loss())}")
                for t in range(NUM_CUM_LOSS_RESOLUTIONS, 0, -1):
                    print(
                        f"% Boundaries (t <= {t * args.frame_rate}ms) = "
                        f"{_fmt(tracker.percent_within(t))}"
                    )
                print()

    print("Done.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if len(args.files) < 7:
        parser.print_help()
        return 1
    try:
        return _run(args)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())