"""
Event types for voice conversation pipeline communication.

This module provides dataclasses for passing data between the recognition
channel, the streaming session and the conversation loop, and prevents
circular dependencies by centralizing them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


@dataclass
class QueryResult:
    """Structured intent result returned by the recognition service."""
    intent_name: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)
    diagnostic_info: Dict[str, Any] = field(default_factory=dict)
    query_text: str = ""
    fulfillment_text: str = ""

    @property
    def end_conversation(self) -> bool:
        """True when the service expects no further user input."""
        return bool(self.diagnostic_info.get("end_conversation"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryResult":
        """
        Build from a snake_case query result mapping.

        Args:
            data: Mapping as produced by proto-plus ``to_dict``

        Returns:
            QueryResult with missing fields defaulted
        """
        intent = data.get("intent") or {}
        return cls(
            intent_name=intent.get("display_name", ""),
            parameters=dict(data.get("parameters") or {}),
            diagnostic_info=dict(data.get("diagnostic_info") or {}),
            query_text=data.get("query_text", ""),
            fulfillment_text=data.get("fulfillment_text", ""),
        )


@dataclass
class InterimTranscript:
    """Partial or final speech-to-text result for the current utterance."""
    text: str
    is_final: bool = False


@dataclass
class QueryResultEvent:
    """Intent detection result; does not end the exchange by itself."""
    result: QueryResult


@dataclass
class OutputAudio:
    """Synthesized response audio; terminal event of an exchange."""
    audio: bytes


RecognitionEvent = Union[InterimTranscript, QueryResultEvent, OutputAudio]


@dataclass
class Turn:
    """
    Outcome of one duplex exchange.

    A turn is either silent (no audio, no query result) or resolved
    (audio present, query result if the service sent one).
    """
    audio: Optional[bytes] = None
    query_result: Optional[QueryResult] = None

    @property
    def is_silent(self) -> bool:
        return not self.audio
