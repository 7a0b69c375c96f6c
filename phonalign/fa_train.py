"""Train a forced-alignment classifier with Passive-Aggressive updates."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .fa_classifier import AlignmentClassifier
from .fa_dataset import AlignmentDataset
from .phonemes import PhonemeMap
from .textio import format_sequence

_SEPARATOR = "=" * 82
_NO_LOSS_YET = 1e100

log = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return f"{value:g}"


def mean_abs_error(y: Sequence[int], y_hat: Sequence[int]) -> float:
    """Mean absolute difference, in frames, between true and predicted start times."""
    if not y:
        raise ValueError("no boundaries to compare")
    if len(y_hat) < len(y):
        raise ValueError("prediction has fewer boundaries than the labels")
    return sum(abs(true - pred) for true, pred in zip(y, y_hat)) / float(len(y))


def validation_loss(
    classifier: AlignmentClassifier,
    dataset: AlignmentDataset,
    remove_silence: bool = False,
) -> float:
    """Average over the dataset of each utterance's mean boundary error."""
    count = len(dataset)
    if count == 0:
        raise ValueError("validation dataset is empty")
    total = 0.0
    for _ in range(count):
        x, y = dataset.read(remove_silence)
        _, y_hat = classifier.predict(x)
        total += mean_abs_error(y, y_hat)
    return total / count


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fa-train", description="Forced Alignment based on Passive-Aggressive"
    )
    parser.add_argument("-val_scores_filelist", default="",
                        help="validation scores file list")
    parser.add_argument("-val_dists_filelist", default="",
                        help="validation dists file list")
    parser.add_argument("-val_phonemes_filelist", default="",
                        help="validation phonemes file list")
    parser.add_argument("-val_start_times_filelist", default="",
                        help="validation start-times file list")
    parser.add_argument("-epochs", type=int, default=1, help="number of epochs [1]")
    parser.add_argument("-frame_rate", type=int, default=10,
                        help="frame rate (shift) in msec [10]")
    parser.add_argument("-min_phoneme_length", type=float, default=20.0,
                        help="min. phoneme duration in msec [20]")
    parser.add_argument("-max_phoneme_length", type=float, default=330.0,
                        help="max. phoneme duration in msec [330]")
    parser.add_argument("-silence_symbol", default="sil", help="silence symbol [sil]")
    parser.add_argument("-remove_silence", action="store_true",
                        help="remove pre/post silence from data")
    parser.add_argument("-PA1_C", type=float, default=5.0, help="C parameter for PA-I")
    parser.add_argument("-beta1", type=float, default=1.0,
                        help="weight of the distance feature")
    parser.add_argument("-beta2", type=float, default=1.0,
                        help="weight of the duration feature")
    parser.add_argument("-beta3", type=float, default=1.0,
                        help="weight of the speaking rate feature")
    parser.add_argument("-min_gamma", type=float, default=1.0,
                        help="the minimal value of sqrt(gamma) before an update")
    parser.add_argument(
        "files", nargs="*", metavar="FILE",
        help="scores_filelist dists_filelist phonemes_filelist "
             "start_times_filelist phonemes phoneme-stats classifier",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    (scores_fl, dists_fl, phonemes_fl, start_times_fl,
     phonemes_path, stats_path, classifier_path) = args.files[:7]

    phoneme_map = PhonemeMap.load(phonemes_path, args.silence_symbol)
    classifier = AlignmentClassifier(
        args.frame_rate, args.min_phoneme_length, args.max_phoneme_length,
        args.PA1_C, args.beta1, args.beta2, args.beta3, args.min_gamma,
    )
    classifier.load_phoneme_stats(stats_path, len(phoneme_map))

    best_validation_loss = _NO_LOSS_YET
    for _epoch in range(args.epochs):
        training = AlignmentDataset(
            scores_fl, dists_fl, phonemes_fl, start_times_fl, phoneme_map
        )
        max_loss = 0.0
        total_loss = 0.0
        for i in range(len(training)):
            print(_SEPARATOR)
            x, y = training.read(args.remove_silence)
            _, y_hat = classifier.predict(x)
            print(f"phonemes={format_sequence(phoneme_map.decode(x.phonemes))}")
            print(f"alignment= {format_sequence(y)}")
            print(f"predicted= {format_sequence(y_hat)}")

            loss = classifier.update(x, y, y_hat)
            max_loss = max(max_loss, loss)
            total_loss += loss

            if args.val_scores_filelist and classifier.w_changed:
                print("Validation...")
                validation = AlignmentDataset(
                    args.val_scores_filelist, args.val_dists_filelist,
                    args.val_phonemes_filelist, args.val_start_times_filelist,
                    phoneme_map,
                )
                this_loss = validation_loss(classifier, validation, args.remove_silence)
                if this_loss < best_validation_loss:
                    best_validation_loss = this_loss
                    classifier.save(classifier_path)
                print(
                    f"i = {i}, this validation error = {_fmt(this_loss)}, "
                    f"best validation loss  = {_fmt(best_validation_loss)}"
                )

        average = total_loss / len(training) if len(training) else float("nan")
        log.debug("maximal loss in epoch = %s", max_loss)
        print(
            f" average normalized loss = {_fmt(average)} "
            f"best validation loss  = {_fmt(best_validation_loss)}"
        )

    if not args.val_scores_filelist:
        classifier.save(classifier_path)

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