"""Clocks and the periodic trigger table."""
