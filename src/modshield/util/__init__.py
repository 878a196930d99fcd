"""
Utility functions and helpers for modshield.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output
  and rotating file handlers. Suppresses noise from verbose libraries (Discord
  internals, Pillow, onnxruntime). Uses prompt_toolkit for non-blocking console I/O.

- **discord_utils.py**: Low-level Discord API helpers for the slash commands:
  permission checks, guild-wide message search and bounded-concurrency deletion.
"""
