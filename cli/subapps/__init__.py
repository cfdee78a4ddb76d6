"""Typer sub-applications mounted by :mod:`cli.app`."""
