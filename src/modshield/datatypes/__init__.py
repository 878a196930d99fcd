"""
Value types shared across modshield.

- **discord_datatypes.py**: Snowflake wrappers (user, channel, role ids).
- **content_datatypes.py**: Frames, classifications, media items and verdicts.
- **case_datatypes.py**: Moderation case states, decisions and outcomes.
"""
