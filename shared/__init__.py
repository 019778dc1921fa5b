"""
Shared Kernel

Infrastructure shared by every app: domain event envelopes, the in-process
message bus, the job queue with its brokers and workers, and the clocks
and trigger table that drive periodic sweeps.
"""
