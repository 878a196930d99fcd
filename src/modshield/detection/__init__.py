"""
Text detection for modshield.

- **text_heuristics.py**: Regex and edit-distance rules that flag fake Discord
  gift links, look-alike domains, "free nitro" bait and masked Markdown links.
"""
