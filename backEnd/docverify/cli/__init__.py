"""Command line entry point (python -m docverify.cli)."""
