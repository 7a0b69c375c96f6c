"""Train a discriminative keyword spotter with Passive-Aggressive updates."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

from .kws_classifier import KeywordClassifier
from .kws_dataset import KeywordDataset
from .phonemes import PhonemeMap
from .textio import format_sequence

FRAME_RATE = 10
MIN_UPDATES_BEFORE_VALIDATION = 20
AUC_TARGET = 0.9999
_SEPARATOR = "=" * 72

log = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return f"{value:g}"


def validation_auc(
    classifier: KeywordClassifier,
    dataset: KeywordDataset,
    scores_ext: str = ".scores",
    remove_silence: bool = False,
) -> float:
    """Fraction of pairs whose positive utterance outscores the negative one."""
    count = len(dataset)
    if count == 0:
        raise ValueError("validation dataset is empty")
    wins = 0
    for _ in range(count):
        x_p, x_n, keyword, _starts, _end = dataset.read_pair(scores_ext, remove_silence)
        confidence_p, _, _ = classifier.align_keyword(x_p, keyword)
        confidence_n, _, _ = classifier.align_keyword(x_n, keyword)
        if confidence_p > confidence_n:
            wins += 1
        print(f"confidence pos={_fmt(confidence_p)} neg={_fmt(confidence_n)}")
    return wins / count


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kws-train", description="Training discriminative Keyword Spotter"
    )
    parser.add_argument("-min_phoneme_length", type=float, default=20.0,
                        help="min. phoneme duration in msec [20]")
    parser.add_argument("-max_phoneme_length", type=float, default=330.0,
                        help="max. phoneme duration in msec [330]")
    parser.add_argument("-silence_symbol", default="sil", help="silence symbol [sil]")
    parser.add_argument("-dist_stats", default="dist_stats.out",
                        help="feature statistics filename [dist_stats.out]")
    parser.add_argument("-remove_silence", action="store_true",
                        help="remove pre/post silence from data")
    parser.add_argument("-val_pos_filelist", default="",
                        help="validation positive file list")
    parser.add_argument("-val_neg_filelist", default="",
                        help="validation negative file list")
    parser.add_argument("-val_keyword_phoneme_list", default="",
                        help="validation keyword phone list")
    parser.add_argument("-val_keyword_alignment_list", default="",
                        help="validation keyword alignment list")
    parser.add_argument("-PA1_C", type=float, default=1.0, help="C parameter for PA-I")
    parser.add_argument("-beta1", type=float, default=0.01,
                        help="weight of the distance feature")
    parser.add_argument("-beta2", type=float, default=1.0,
                        help="weight of the duration feature")
    parser.add_argument("-beta3", type=float, default=1.0,
                        help="weight of the speaking rate feature")
    parser.add_argument("-scores_ext", default=".scores",
                        help="file extension for the scores")
    parser.add_argument(
        "files", nargs="*", metavar="FILE",
        help="pos_filelist neg_filelist keyword_phoneme_list "
             "keyword_alignment_list phonemes phoneme-stats classifier",
    )
    return parser


class _Validator:
    """Runs validation rounds and keeps the best-scoring weights on disk."""

    def __init__(self, args, classifier, phoneme_map, classifier_path) -> None:
        self.args = args
        self.classifier = classifier
        self.phoneme_map = phoneme_map
        self.classifier_path = classifier_path
        self.best_auc = 0.0
        self.saved = False

    def run(self, label: str) -> bool:
        """Validate once; return true when the target AUC has been reached."""
        print("Validation...")
        dataset = KeywordDataset(
            self.args.val_pos_filelist, self.args.val_neg_filelist,
            self.args.val_keyword_phoneme_list, self.args.val_keyword_alignment_list,
            self.phoneme_map,
        )
        auc = validation_auc(
            self.classifier, dataset, self.args.scores_ext, self.args.remove_silence
        )
        print(f"{label}this_w_auc={_fmt(auc)} best_w_auc={_fmt(self.best_auc)}")
        if auc > self.best_auc:
            self.best_auc = auc
            print("Saving classifier...")
            self.classifier.save(self.classifier_path)
            self.saved = True
        return auc >= AUC_TARGET


def _run(args: argparse.Namespace) -> int:
    (pos_fl, neg_fl, keyword_list, alignment_list,
     phonemes_path, stats_path, classifier_path) = args.files[:7]

    phoneme_map = PhonemeMap.load(phonemes_path, args.silence_symbol, strict=True)
    classifier = KeywordClassifier(
        FRAME_RATE, args.min_phoneme_length, args.max_phoneme_length,
        args.PA1_C, args.beta1, args.beta2, args.beta3,
    )
    print("Loading classifier...")
    classifier.load(classifier_path)
    classifier.load_phoneme_stats(stats_path, len(phoneme_map))

    training = KeywordDataset(pos_fl, neg_fl, keyword_list, alignment_list, phoneme_map)
    validator = _Validator(args, classifier, phoneme_map, classifier_path)

    if args.val_pos_filelist and validator.run(" "):
        print("Done.")
        return 0

    for l in range(len(training)):
        print(_SEPARATOR)
        x_p, x_n, keyword, s_c, end_frame_c = training.read_pair(
            args.scores_ext, args.remove_silence
        )
        print(f"keyword=/{format_sequence(phoneme_map.decode(keyword))}/")

        confidence_p, s_p, end_frame_p = classifier.align_keyword(x_p, keyword)
        phi_p = classifier.phi(x_p, keyword, s_p, end_frame_p)
        print("phi pos=" + " ".join(_fmt(v) for v in phi_p))
        print(f"predict pos [{_fmt(confidence_p)}] {format_sequence(s_p)} >{end_frame_p}")

        confidence_c = classifier.confidence_keyword(x_p, keyword, s_c, end_frame_c)
        print(f"true pos    [{_fmt(confidence_c)}] {format_sequence(s_c)} >{end_frame_c}")

        confidence_n, s_n, end_frame_n = classifier.align_keyword(x_n, keyword)
        phi_n = classifier.phi(x_n, keyword, s_n, end_frame_n)
        print("phi neg=" + " ".join(_fmt(v) for v in phi_n))
        print(f"predict neg [{_fmt(confidence_n)}] {format_sequence(s_n)} >{end_frame_n}")

        print(f"confidence_p-confidence_n={_fmt(confidence_p - confidence_n)}")
        classifier.update(keyword, x_p, s_c, end_frame_c, x_n, s_n, end_frame_n)

        if (
            args.val_pos_filelist
            and classifier.w_changed
            and l >= MIN_UPDATES_BEFORE_VALIDATION
        ):
            if validator.run(f"i={l} "):
                print("Done.")
                return 0

    if not validator.saved:
        print("Saving classifier...")
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
    except (OSError, ValueError, IndexError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())