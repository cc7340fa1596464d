"""Exceptions and warnings raised by the brain time pipeline.

Fatal conditions subclass :class:`BrainTimeError` and abort the current call
without partial output. Recoverable conditions are ``UserWarning`` subclasses
that are emitted, logged and recorded on the returned bundle.
"""
from __future__ import annotations


class BrainTimeError(ValueError):
    """Base class for fatal brain time errors."""
    pass


class ConfigError(BrainTimeError):
    """Configuration-related errors."""
    pass


class UnsupportedRemoval(BrainTimeError):
    """Component removal was requested but the warping sources are not ICA components."""
    pass


class PhaseLengthMismatch(BrainTimeError):
    """Carrier phase and data differ in length by more than 10 samples."""
    pass


class GEDPhaseLengthMismatch(BrainTimeError):
    """GED and FFT phase estimates differ in length by more than 5%."""
    pass


class InsufficientSignalQuality(BrainTimeError):
    """The average waveshape does not resolve to exactly two troughs."""
    pass


class NoSpectralPeak(BrainTimeError):
    """A row or column spectrum of the AC map has no local maximum."""
    pass


class RecoverableWarning(UserWarning):
    """Processing continued using a documented fallback."""
    pass


class CircularityWarning(UserWarning):
    """Carrier source and warped data may not be independent."""
    pass


__all__ = [
    "BrainTimeError",
    "ConfigError",
    "UnsupportedRemoval",
    "PhaseLengthMismatch",
    "GEDPhaseLengthMismatch",
    "InsufficientSignalQuality",
    "NoSpectralPeak",
    "RecoverableWarning",
    "CircularityWarning",
]
