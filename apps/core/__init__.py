"""Core app package.

Process bootstrap for the scheduling core: queue and trigger tables, the
event listener table, health endpoints, rate limiting and data retention.
"""
