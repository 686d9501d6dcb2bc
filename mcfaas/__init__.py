"""
MCFaaS deployment control plane.

Turns deployment requests into isolated worker processes and keeps track of
the applications those workers report back.
"""

__version__ = "0.1.0"
