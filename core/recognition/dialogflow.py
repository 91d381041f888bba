"""
Dialogflow ES streaming recognition channel.

Wraps SessionsAsyncClient.streaming_detect_intent: requests are fed from an
asyncio queue whose first item is the setup request, and responses are
translated into the pipeline's RecognitionEvent types.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

from google.api_core import exceptions as core_exceptions
from google.cloud import dialogflow

from utils.errors import ChannelError, ConfigurationError
from utils.events import (
    InterimTranscript,
    OutputAudio,
    QueryResult,
    QueryResultEvent,
    RecognitionEvent,
)
from .channel import RecognitionChannel, RecognitionExchange, StreamSetup

logger = logging.getLogger(__name__)

INPUT_ENCODINGS = {
    "LINEAR16": dialogflow.AudioEncoding.AUDIO_ENCODING_LINEAR_16,
    "FLAC": dialogflow.AudioEncoding.AUDIO_ENCODING_FLAC,
    "MULAW": dialogflow.AudioEncoding.AUDIO_ENCODING_MULAW,
    "OGG_OPUS": dialogflow.AudioEncoding.AUDIO_ENCODING_OGG_OPUS,
}

OUTPUT_ENCODINGS = {
    "LINEAR16": dialogflow.OutputAudioEncoding.OUTPUT_AUDIO_ENCODING_LINEAR_16,
    "MP3": dialogflow.OutputAudioEncoding.OUTPUT_AUDIO_ENCODING_MP3,
    "OGG_OPUS": dialogflow.OutputAudioEncoding.OUTPUT_AUDIO_ENCODING_OGG_OPUS,
    "MULAW": dialogflow.OutputAudioEncoding.OUTPUT_AUDIO_ENCODING_MULAW,
}


def build_setup_request(session_path: str, setup: StreamSetup) -> dialogflow.StreamingDetectIntentRequest:
    """Translate a StreamSetup into the initial streaming request."""
    try:
        input_encoding = INPUT_ENCODINGS[setup.audio_config.encoding.upper()]
        output_encoding = OUTPUT_ENCODINGS[setup.output_audio_config.encoding.upper()]
    except KeyError as e:
        raise ConfigurationError(f"Unsupported audio encoding: {e.args[0]}") from e

    return dialogflow.StreamingDetectIntentRequest(
        session=session_path,
        query_input=dialogflow.QueryInput(
            audio_config=dialogflow.InputAudioConfig(
                audio_encoding=input_encoding,
                sample_rate_hertz=setup.audio_config.sample_rate_hz,
                language_code=setup.audio_config.language_code,
                single_utterance=setup.single_utterance,
            )
        ),
        output_audio_config=dialogflow.OutputAudioConfig(
            audio_encoding=output_encoding,
            sample_rate_hertz=setup.output_audio_config.sample_rate_hz,
        ),
    )


def translate_response(response: dialogflow.StreamingDetectIntentResponse) -> List[RecognitionEvent]:
    """
    Split one streaming response into recognition events.

    A single response may carry a query result and output audio together;
    output audio always comes last so it stays the terminal event.
    """
    events: List[RecognitionEvent] = []

    if "recognition_result" in response:
        result = response.recognition_result
        events.append(InterimTranscript(text=result.transcript, is_final=result.is_final))

    if "query_result" in response:
        data = dialogflow.QueryResult.to_dict(response.query_result)
        events.append(QueryResultEvent(QueryResult.from_dict(data)))

    if response.output_audio:
        events.append(OutputAudio(bytes(response.output_audio)))

    return events


class DialogflowExchange(RecognitionExchange):
    """A single streaming_detect_intent call."""

    def __init__(self, client: dialogflow.SessionsAsyncClient, setup_request):
        self._client = client
        self._requests: asyncio.Queue = asyncio.Queue()
        self._requests.put_nowait(setup_request)
        self._call = None
        self._ended = False

    async def start(self) -> None:
        try:
            self._call = await self._client.streaming_detect_intent(requests=self._request_iterator())
        except core_exceptions.GoogleAPICallError as e:
            self._ended = True
            raise ChannelError(f"Failed to open recognition stream: {e}") from e

    async def _request_iterator(self):
        while True:
            request = await self._requests.get()
            if request is None:
                return
            yield request

    async def send_audio(self, chunk: bytes) -> None:
        if self._ended:
            return
        self._requests.put_nowait(dialogflow.StreamingDetectIntentRequest(input_audio=chunk))

    async def events(self) -> AsyncIterator[RecognitionEvent]:
        if self._call is None:
            raise ChannelError("Recognition stream was not started")

        try:
            async for response in self._call:
                for event in translate_response(response):
                    yield event
        except core_exceptions.GoogleAPICallError as e:
            raise ChannelError(f"Recognition stream failed: {e}") from e

    async def end(self) -> None:
        if self._ended:
            return
        self._ended = True
        self._requests.put_nowait(None)

        if self._call is not None:
            self._call.cancel()
        logger.debug("Recognition stream ended")


class DialogflowChannel(RecognitionChannel):
    """
    Recognition channel backed by Dialogflow ES.

    The client is created on first use so that credentials are only required
    once a conversation actually starts.
    """

    def __init__(self, project_id: str, client: Optional[dialogflow.SessionsAsyncClient] = None):
        self.project_id = project_id
        self._client = client

    @property
    def client(self) -> dialogflow.SessionsAsyncClient:
        if self._client is None:
            self._client = dialogflow.SessionsAsyncClient()
        return self._client

    async def open(self, setup: StreamSetup) -> DialogflowExchange:
        session_path = self.client.session_path(self.project_id, setup.session_id)
        exchange = DialogflowExchange(self.client, build_setup_request(session_path, setup))
        await exchange.start()
        logger.debug(f"Opened recognition stream for {session_path}")
        return exchange
