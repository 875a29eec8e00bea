"""Export OpenCode conversation histories to readable Markdown."""

__version__ = "0.1.0"
