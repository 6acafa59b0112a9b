"""
execsafe — capability and execution safety platform.

Decides whether an agent-issued shell command may run, rewrites it when
a safer equivalent exists, installs the programs it needs, and guards
file writes with checkpoints.
"""

__version__ = "0.1.0"
