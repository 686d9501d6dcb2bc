"""
Local package for the MCFaaS control plane.

Holds configuration, the deployment and application registries, environment
sanitization, dependency installation and the worker supervisor.
"""
