"""Impolite - a terminal greeter for the greetd login daemon."""

__version__ = "0.1.0"
