"""Reviews app package.

Stores reviews and keeps per-user and per-listing rating totals.
"""
