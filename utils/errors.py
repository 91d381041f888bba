"""
Exceptions shared across the voicestream pipeline.

Kept at the utils level so that core/, dialog/ and the assistant can raise
and catch the same types without circular imports.
"""


class VoiceStreamError(Exception):
    """Base class for all voicestream errors."""


class ConfigurationError(VoiceStreamError):
    """Raised when required configuration is missing or invalid."""


class ChannelError(VoiceStreamError):
    """
    Raised when the recognition or synthesis service fails.

    Covers transport errors, service-side errors and streams that close
    before the exchange completed. Never retried internally.
    """


class CompletionTimeoutError(ChannelError):
    """Raised when output audio does not arrive after the final transcript."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(
            f"No output audio received within {timeout_ms}ms of the final transcript"
        )


class DeviceError(VoiceStreamError):
    """Raised when a capture or playback device cannot be used."""


class DeviceBusyError(DeviceError):
    """Raised when the output device is claimed and the policy rejects waiting."""

    def __init__(self, owner: str, holder: str):
        self.owner = owner
        self.holder = holder
        super().__init__(f"Output device busy: '{owner}' rejected while '{holder}' is playing")
