#!/usr/bin/env python3
"""
Global hotkey listener that starts conversations.

The pynput listener runs in its own thread; presses are handed to the
asyncio loop through a queue so the conversation itself runs on the loop.
"""

from pynput import keyboard
import threading
import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

TRIGGER_EVENT = "converse"


class HotKeyManager:
    """
    Pushes a trigger event onto an asyncio queue for each hotkey press.

    - Single threaded listener that blocks until stop()
    - Thread-safe hand-off via call_soon_threadsafe
    - Presses while a conversation is active are dropped
    """

    def __init__(self,
                 queue: asyncio.Queue,
                 loop: asyncio.AbstractEventLoop,
                 is_busy: Optional[Callable[[], bool]] = None,
                 hotkey: str = "<ctrl>+<alt>+<space>"):
        self.queue = queue
        self.loop = loop
        self.is_busy = is_busy or (lambda: False)
        self.hotkey = hotkey
        self.listener: Optional[keyboard.GlobalHotKeys] = None
        self.thread: Optional[threading.Thread] = None

    def _on_hotkey(self):
        """
        Hotkey callback - executes in listener thread.
        """
        logger.debug("🔥 hot-key callback fired")

        if self.is_busy():
            logger.debug("Hot-key ignored: conversation in progress")
            return

        try:
            self.loop.call_soon_threadsafe(self._enqueue)
        except RuntimeError:
            logger.debug("Hot-key ignored: event loop closed")

    def _enqueue(self):
        try:
            self.queue.put_nowait(TRIGGER_EVENT)
        except asyncio.QueueFull:
            logger.debug("Trigger already pending, dropping hot-key")

    def _run_listener(self):
        """
        Listener thread main function.
        Blocks until stop() is called.
        """
        try:
            logger.debug("Starting pynput GlobalHotKeys listener")
            with keyboard.GlobalHotKeys({self.hotkey: self._on_hotkey}) as hk:
                self.listener = hk
                hk.join()
        except Exception as e:
            logger.error(f"Hotkey listener error: {e}")
        finally:
            self.listener = None
            logger.debug("Hotkey listener thread ended")

    def start(self):
        """Start the hotkey listener in a background thread."""
        if self.thread and self.thread.is_alive():
            logger.debug("Hotkey listener already running")
            return

        self.thread = threading.Thread(
            target=self._run_listener,
            name="HotKeyListener",
            daemon=True
        )
        self.thread.start()
        logger.info(f"Global hot-key listener started ({self.hotkey})")

    def stop(self):
        """Stop the hotkey listener gracefully."""
        if self.listener is not None:
            self.listener.stop()
        if self.thread and self.thread.is_alive():
            self.thread.join(timeout=1.0)

        logger.info("Hotkey listener stopped")
