"""
L3 Detection — read-only probes of the host environment.
"""

from execsafe.core.services.capabilities.detection.binary_probe import (  # noqa: F401
    BinaryProbe,
    CoalescingProbe,
    probe_binary,
)
