"""Discriminative phoneme forced alignment and keyword spotting with PA-I training."""

__version__ = "0.1.0"