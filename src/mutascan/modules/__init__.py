"""Scan pipeline modules."""
