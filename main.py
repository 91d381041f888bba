#!/usr/bin/env python3
"""
Main launcher for voicestream.

Simple entry point that starts the assistant.
"""

from assistant import main
import asyncio
import sys


def run():
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(run())
