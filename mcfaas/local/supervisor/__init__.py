"""
The Supervisor package.
Manages the lifecycle of worker processes.

This package contains the WorkerSupervisor, the WorkerHandle state machine and
the helper modules for spawning, output forwarding and shutdown.
"""
from .handle import WorkerHandle, WorkerState
from .supervisor import WorkerSupervisor

__all__ = ['WorkerHandle', 'WorkerState', 'WorkerSupervisor']
