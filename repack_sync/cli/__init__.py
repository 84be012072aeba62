"""
Command-line Layer.

This package defines the Typer application and the Rich formatters used to
render sources, repacks and sync reports.
"""
