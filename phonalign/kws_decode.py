"""Search utterances for keywords with a trained keyword spotter."""

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
_SEPARATOR = "=" * 72

log = logging.getLogger(__name__)


def _fmt(value: float) -> str:
    return f"{value:g}"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kws-decode", description="Decoding discriminative Keyword Spotter"
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
        help="filelist keyword_phoneme_list phonemes phoneme-stats classifier",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    filelist, keyword_list, phonemes_path, stats_path, classifier_path = args.files[:5]

    phoneme_map = PhonemeMap.load(phonemes_path, args.silence_symbol, strict=True)
    classifier = KeywordClassifier(
        FRAME_RATE, args.min_phoneme_length, args.max_phoneme_length,
        0.0, args.beta1, args.beta2, args.beta3,
    )
    classifier.load(classifier_path)
    classifier.load_phoneme_stats(stats_path, len(phoneme_map))

    dataset = KeywordDataset.for_decoding(filelist, keyword_list, phoneme_map)

    for l in range(len(dataset)):
        print(_SEPARATOR)
        x, keyword, _true_s, _true_end, frame_offset = dataset.read_single(
            args.scores_ext, args.remove_silence
        )
        try:
            confidence, starts, end_frame = classifier.align_keyword(x, keyword)
        except MemoryError:
            print("Error: cannot allocate memory. Skipping...", file=sys.stderr)
            continue
        except ValueError as exc:
            print(f"Error: {exc}. Skipping...", file=sys.stderr)
            continue

        abs_starts = [start + frame_offset for start in starts]
        abs_end = end_frame + frame_offset
        phi = classifier.phi(x, keyword, starts, end_frame)
        print(f"keyword[{l}]=/{format_sequence(phoneme_map.decode(keyword))}/")
        print(f"alignment[{l}]={format_sequence(abs_starts)} {abs_end}")
        print(f"confidence[{l}]= {_fmt(confidence)}")
        print("phi=" + " ".join(_fmt(v) for v in phi))

    print("Done.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if len(args.files) < 5:
        parser.print_help()
        return 1
    try:
        return _run(args)
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())