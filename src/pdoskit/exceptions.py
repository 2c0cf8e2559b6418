"""Exceptions raised while building DOS and PDOS curves."""

__all__ = ("PdosError", "ConfigurationError", "DataIntegrityError", "NumericOverflowError")


class PdosError(Exception):
    """Base class for all errors raised by `pdoskit`."""


class ConfigurationError(PdosError, ValueError):
    """Invalid user settings: bad selection tokens, smearing parameters, or plot definitions."""


class DataIntegrityError(PdosError, ValueError):
    """Loaded data that cannot be used: non-finite values, inconsistent shapes, or out-of-range selections."""


class NumericOverflowError(DataIntegrityError):
    """A non-finite density was produced by a smearing kernel."""
