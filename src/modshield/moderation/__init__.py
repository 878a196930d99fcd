"""
Screening and moderation workflow.

- **score_aggregator.py**: Single-image and running-average verdict policies.
- **media_pipeline.py**: Collects a message's media and classifies it concurrently.
- **allow_list.py**: Bot, trusted-role and time-limited allow-list exemptions.
- **moderation_case.py**: Mute, report, decide, resolve state machine per incident.
- **screening.py**: Per-message orchestration from exemption check to case.
"""
