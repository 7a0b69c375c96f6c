# phonalign

Discriminative phoneme alignment and keyword spotting for speech.

Both tasks share one kind of model: a linear classifier over a
seven-dimensional feature map built from per-frame phoneme scores, per-frame
distance features and phoneme duration statistics. Inference is a dynamic
program over phoneme start frames; training uses Passive-Aggressive (PA-I)
updates.

## Installation

```
pip install .
```

The only runtime dependency is `numpy`. To run the tests:

```
pip install .[test]
pytest
```

## Input files

All inputs read by the commands are plain text:

- **matrix**: its height and width, then the values row by row, all
  separated by whitespace.
- **vector**: its length, then the values. Classifier weights are stored this
  way (seven values).
- **phonemes file**: whitespace-separated phoneme symbols. The position of a
  symbol is its index. The silence symbol (`sil` by default) should be among
  them: the alignment commands log an error if it is missing, the keyword
  commands stop.
- **phoneme statistics**: a matrix whose first row holds each phoneme's mean
  duration in frames and whose second row holds the standard deviation; it
  must have one column per phoneme.
- **scores**: a matrix with one row per frame and one column per phoneme.
  Each row is rescaled to `[0, 1]` when read.
- **distances**: a matrix with one row per frame and at least four columns.
- **start times**: whitespace-separated integer frames, one per phoneme.
- **phoneme sequences**: whitespace-separated symbols; the symbol `del` is
  read as `t`.
- **file lists**: one entry per line; empty lines are ignored.

## Forced alignment

```
phonalign-align-train [options] scores_filelist dists_filelist phonemes_filelist start_times_filelist phonemes phoneme-stats classifier
```

Trains on utterances with known start times for `-epochs` passes (default 1)
and writes the weights to `classifier`. With `-val_scores_filelist` (and the
other `-val_*` lists) the weights are validated after every update and saved
whenever the mean boundary error on the validation set improves. Other
options: `-frame_rate`, `-min_phoneme_length`, `-max_phoneme_length` (in
msec), `-silence_symbol`, `-remove_silence`, `-PA1_C`, `-beta1`, `-beta2`,
`-beta3`, `-min_gamma`.

```
phonalign-align [options] scores_filelist dists_filelist phonemes_filelist start_times_filelist|null phonemes phoneme-stats classifier
```

Prints the predicted start frames and a confidence for each utterance. Give
`null` as the start-times list when no reference is available; otherwise the
command also reports each file's mean boundary error, the cumulative error and
the share of boundaries within 1 to 8 frames of the reference. When a single
scores file and a single distances file are listed together with several
phoneme entries and no start times, each phoneme-list line is taken as a
phoneme string to align against that one utterance. `-output_align` names a
file list into which each alignment is written, one start frame per line;
`-output_confidence` names a file that receives one confidence per line.

## Keyword spotting

Utterances are named by stems: the command reads `<stem>.scores` (or the
extension given by `-scores_ext`), `<stem>.dist` and, if present,
`<stem>.start_times`.

```
phonalign-kws-train [options] pos_filelist neg_filelist keyword_phoneme_list keyword_alignment_list phonemes phoneme-stats classifier
```

Each training item pairs an utterance containing the keyword with one that
does not. Each line of `keyword_phoneme_list` is a keyword's phoneme string;
each line of `keyword_alignment_list` holds that keyword's start frames in the
positive utterance followed by its end frame. Training starts from the weights
already in `classifier`, so that file must exist. With `-val_pos_filelist`
(and the other `-val_*` lists) the weights are validated before training and
after each update from the 21st item on, saved whenever the validation AUC
improves, and training stops once it reaches 0.9999.

```
phonalign-kws [options] filelist keyword_phoneme_list phonemes phoneme-stats classifier
```

Searches each listed utterance for its keyword and prints the best alignment,
its confidence and its feature vector. If the keyword list has a different
number of lines than the file list, the first keyword is searched for in every
file.

Both keyword commands take `-min_phoneme_length`, `-max_phoneme_length`,
`-silence_symbol`, `-remove_silence`, `-beta1`, `-beta2`, `-beta3` and
`-scores_ext`; the frame rate is fixed at 10 msec.

## Library use

- `phonalign.phonemes.PhonemeMap` maps phoneme symbols to indices and back.
- `phonalign.fa_dataset` (`SpeechUtterance`, `AlignmentDataset`) and
  `phonalign.kws_dataset` (`KeywordUtterance`, `KeywordDataset`) read
  utterances and datasets.
- `phonalign.fa_classifier.AlignmentClassifier` and
  `phonalign.kws_classifier.KeywordClassifier` hold the models, with
  `predict` / `align_keyword` for inference and `update` for training.
- `phonalign.fa_decode.BoundaryLossTracker` accumulates boundary errors.
- `phonalign.textio` reads and writes the text formats above.
- `phonalign.htk.HtkFile` reads and writes HTK parameter files (big-endian
  header and float frames); `parm_kind_to_str` names a parameter kind.
- `phonalign.algo` offers `sorti` (the indices that sort a sequence) and
  `randn_matrix` (a matrix of standard normal samples).

## What it does not do

The package does not compute phoneme scores or distance features from audio;
they must be produced elsewhere and supplied as text matrices. The commands do
not read HTK files; `HtkFile` is only available from Python.