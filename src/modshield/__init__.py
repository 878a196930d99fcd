"""modshield: phishing link and NSFW media screening for Discord communities."""

__version__ = "0.1.0"
