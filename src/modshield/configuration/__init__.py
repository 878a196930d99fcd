"""
Configuration management for modshield.

- **app_configuration.py**: YAML loader for tuning values (trusted roles,
  allow-list duration, decision timeout, ban options) and the ``.env``-backed
  ``BotSettings`` holding the moderator channel and role ids.

- **media_settings.py**: Typed view over the ``media`` section: classifier
  thresholds, video sampling, batch size, fetch timeout and tool paths.
"""
