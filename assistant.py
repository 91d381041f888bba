#!/usr/bin/env python3
"""
voicestream - hotkey-driven voice conversations with Dialogflow.

Wires the pipeline components together:
- Global hotkey (⌃⌥␣) starts a conversation
- Microphone audio streams to Dialogflow; responses are played back
- Timers set by voice play an alert when they expire
- Errors end the current conversation; the assistant stays ready
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional
import argparse

from config.settings import VoiceStreamConfig, load_config
from core.audio.playback import AlertSound, AudioPlayback
from core.recognition.dialogflow import DialogflowChannel
from core.recognition.session import StreamingConversationSession
from core.tts.google_tts import SpeechSynthesizer
from dialog.intents import IntentDispatcher
from dialog.loop import ConversationLoop
from dialog.scheduler import DeferredEventScheduler
from utils.errors import ConfigurationError, VoiceStreamError
from utils.hotkey_manager import HotKeyManager, TRIGGER_EVENT
from utils.metrics import log_latency


logger = logging.getLogger(__name__)


def setup_logging(log_file: str = "voicestream.log"):
    """Log to stdout and to a file in the working directory."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


class VoiceStreamAssistant:
    """
    Main orchestrator for voicestream.

    Hotkey → ConversationLoop (turns against Dialogflow) → playback,
    with timers armed along the way playing alerts independently.
    """

    def __init__(self, config: VoiceStreamConfig, verbose: bool = False, quiet: bool = False):
        self.config = config
        self.verbose = verbose
        self.quiet = quiet

        if quiet:
            logging.getLogger().setLevel(logging.WARNING)
        elif verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        self.playback = AudioPlayback(config.playback_config())
        self.session: Optional[StreamingConversationSession] = None
        self.scheduler: Optional[DeferredEventScheduler] = None
        self.dispatcher: Optional[IntentDispatcher] = None
        self.hotkey_manager: Optional[HotKeyManager] = None

        self.trigger_queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.shutdown_event = asyncio.Event()
        self.is_running = False
        self.conversation_count = 0
        self._conversation_active = False
        self._worker: Optional[asyncio.Task] = None

    def initialize_components(self) -> None:
        """
        Build the conversation pipeline.

        Raises:
            ConfigurationError: if PROJECT_ID is missing or config is invalid
        """
        channel = DialogflowChannel(self.config.project_id)
        self.session = StreamingConversationSession(
            channel,
            config=self.config.stream_config(),
            audio_config=self.config.audio_config(),
        )

        alert = AlertSound(self.config.timers["alert_path"], sample_rate=self.config.audio["sample_rate"])
        self.scheduler = DeferredEventScheduler(self.playback, alert.buffer, alert_channels=AlertSound.CHANNELS)
        self.dispatcher = IntentDispatcher(self.scheduler)

        logger.info(f"✅ Components ready for project {self.config.project_id}")

    def is_busy(self) -> bool:
        return self._conversation_active

    async def start(self) -> None:
        """Start listening for the hotkey."""
        if self.is_running:
            return

        self.initialize_components()

        self.hotkey_manager = HotKeyManager(
            self.trigger_queue,
            asyncio.get_running_loop(),
            is_busy=self.is_busy,
            hotkey=self.config.ui["hotkey"],
        )
        self.hotkey_manager.start()
        self._worker = asyncio.create_task(self._trigger_worker(), name="trigger_worker")
        self.is_running = True

        if not self.quiet:
            print("\n" + "=" * 60)
            print("🎧 VOICESTREAM READY")
            print("=" * 60)
            print(f"📱 Press {self.config.ui['hotkey']} to talk")
            print("🛑 Press Ctrl+C to quit")
            print("=" * 60 + "\n")

    async def stop(self):
        """Stop the assistant gracefully."""
        if not self.is_running:
            return

        logger.info("🔻 Shutting down voicestream...")
        self.shutdown_event.set()

        if self.hotkey_manager:
            self.hotkey_manager.stop()

        if self._worker and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)

        if self.scheduler:
            await self.scheduler.shutdown()

        if not self.quiet:
            print("\n📊 Final Performance Report:")
            log_latency()

        self.is_running = False
        logger.info("voicestream stopped")

    async def _trigger_worker(self):
        """Run one conversation per trigger, ignoring triggers while one is active."""
        logger.info("⌨️  Trigger worker started")

        while not self.shutdown_event.is_set():
            event = await self.trigger_queue.get()
            if event != TRIGGER_EVENT or self._conversation_active:
                continue
            await self.converse()

    async def converse(self) -> bool:
        """
        Run one conversation. Errors are logged, never raised.

        Returns:
            True if the conversation ended normally
        """
        if self._conversation_active:
            logger.debug("Conversation already active, trigger ignored")
            return False

        self._conversation_active = True
        if not self.quiet:
            print("🎤 Listening...")

        try:
            loop = ConversationLoop(
                self.session, self.playback, self.dispatcher,
                timeout_ms=self.config.turn_timeout_ms,
            )
            await loop.run()
            self.conversation_count += 1
            return True
        except VoiceStreamError as e:
            logger.error(f"Conversation ended with error: {e}")
            return False
        except Exception as e:
            logger.exception(f"Conversation failed unexpectedly: {e}")
            return False
        finally:
            self._conversation_active = False
            if not self.quiet:
                print("⏹️  Done")

    async def say(self, ssml: str) -> None:
        """Synthesize SSML and play it once."""
        synthesizer = SpeechSynthesizer(self.config.synthesis_config())
        result = await synthesizer.synthesize(ssml)
        await self.playback.play(result.audio, channels=1, owner="say")


# CLI and Main Entry Point

def setup_signal_handlers(assistant: VoiceStreamAssistant):
    """Setup graceful shutdown on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, assistant.shutdown_event.set)


async def main(argv=None):
    """Main entry point for voicestream."""
    parser = argparse.ArgumentParser(description="voicestream voice conversations")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Quiet mode")
    parser.add_argument("--config", "-c", type=Path, help="Path to config.toml")
    parser.add_argument("--say", metavar="SSML", help="Synthesize SSML, play it and exit")

    args = parser.parse_args(argv)
    setup_logging()

    config = load_config(str(args.config) if args.config else None)
    assistant = VoiceStreamAssistant(
        config,
        verbose=args.verbose or config.ui.get("verbose", False),
        quiet=args.quiet or config.ui.get("quiet", False),
    )

    if args.say:
        try:
            await assistant.say(args.say)
        except VoiceStreamError as e:
            logger.error(f"Could not say text: {e}")
            return 1
        return 0

    setup_signal_handlers(assistant)

    try:
        await assistant.start()
        await assistant.shutdown_event.wait()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    finally:
        await assistant.stop()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
