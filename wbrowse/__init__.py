"""wbrowse: a persistent, daemon-backed browser session driven from the shell."""

__version__ = "0.1.0"
