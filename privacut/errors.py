from __future__ import annotations


class PrivacutError(Exception):
    """Base class for every failure raised by the background removal core."""


class InvalidInput(PrivacutError, ValueError):
    """Bad image dimensions, missing pixel data or a malformed buffer."""


class DimensionMismatch(PrivacutError, ValueError):
    """Mask size does not match the image it is applied to."""


class ModelMissing(PrivacutError, FileNotFoundError):
    """The model file could not be found in any known location."""


class ModelLoadFailed(PrivacutError, RuntimeError):
    """The inference runtime rejected the model file."""


class SessionNotReady(PrivacutError, RuntimeError):
    """Inference requested on a session that is not (or no longer) open."""


class InferenceFailed(PrivacutError, RuntimeError):
    """The runtime failed during a run or produced an unusable output."""


class Cancelled(PrivacutError):
    """A cancellation request stopped the pipeline between two stages."""
