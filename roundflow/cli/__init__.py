"""Roundflow CLI: Typer-based command-line interface.

Provides the ``roundflow`` command with subcommands for listing routed
topics, validating envelope files and running an in-process demo.

All output uses Rich for formatted terminal display.
"""
