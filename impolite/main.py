#!/usr/bin/env python3
"""
Main entry point for the Typer-based Impolite CLI.

This delegates to the UI layer in impolite.ui.cli to keep the
console script mapping stable.
"""

from impolite.ui.cli import run as impolite


if __name__ == "__main__":
    impolite()
