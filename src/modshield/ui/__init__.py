"""
Discord UI components for moderator reports.

- **case_embeds.py**: Report and moderation-log embeds plus user-facing texts.
- **case_view.py**: Unmute / allowlist / ban buttons feeding a moderation case.
"""
