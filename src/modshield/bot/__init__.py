"""Discord bot integration for modshield."""
