from __future__ import annotations


class WaveformError(Exception):
    """Base class for extraction and silence-detection failures.

    All subclasses are local, recoverable conditions: the caller is
    expected to show "waveform unavailable" and allow a retry.
    """


class EmptySourceError(WaveformError):
    """The decoded source has zero frames."""

    def __init__(self, message: str = "Audio source is empty"):
        super().__init__(message)


class BufferAllocationError(WaveformError):
    """A processing buffer could not be allocated."""

    def __init__(self, message: str = "Failed to allocate audio buffer"):
        super().__init__(message)


class NoSampleDataError(WaveformError):
    """A read chunk yielded no channel data."""

    def __init__(self, message: str = "No audio data found"):
        super().__init__(message)


class DecodeError(WaveformError):
    """The underlying decoder failed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Waveform extraction failed: {reason}")
