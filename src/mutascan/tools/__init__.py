"""Networking tools used by the scan engine."""
