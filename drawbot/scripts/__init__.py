"""Command-line entrypoints (``python -m drawbot.scripts.<name>``)."""
