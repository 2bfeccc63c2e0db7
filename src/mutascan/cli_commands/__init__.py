"""Command modules registered on the shared typer app."""
