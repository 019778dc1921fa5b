"""Bookings app package.

This app holds the booking lifecycle: the state graph, the job handlers
that expire, remind and auto-complete bookings, and the periodic sweeps
that feed those handlers.
"""
