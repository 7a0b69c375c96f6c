[build-system]
requires = ["setuptools>=61.0"]
build-backend = "setuptools.build_meta"

[project]
name = "phonalign"
version = "0.1.0"
description = "Discriminative phoneme forced alignment and keyword spotting trained with Passive-Aggressive updates"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "speech",
    "forced-alignment",
    "keyword-spotting",
    "phoneme",
    "passive-aggressive",
    "htk",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Speech",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
phonalign-align = "phonalign.fa_decode:main"
phonalign-align-train = "phonalign.fa_train:main"
phonalign-kws = "phonalign.kws_decode:main"
phonalign-kws-train = "phonalign.kws_train:main"

[tool.setuptools.packages.find]
include = ["phonalign*"]

[tool.pytest.ini_options]
addopts = "-ra"
