#!/usr/bin/env python3
"""
Main entry point for the Typer-based wb CLI.

This delegates to the UI layer in wbrowse.ui.cli to keep the
console script mapping stable.
"""

from wbrowse.ui.cli import run as wb


if __name__ == "__main__":
    wb()
