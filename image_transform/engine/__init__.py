"""Native engine layer: libvips binding, handle ownership and subsystem lifecycle.

Usage:
    from image_transform.engine import Subsystem

    with Subsystem() as subsystem:
        handle, image_type = subsystem.binding.load(buf)
        ...
"""

from .binding import NativeBinding
from .handle import HandleChain, HandleLedger, NativeImageHandle
from .lifecycle import MemoryStats, Subsystem, get_subsystem, initialize, memory_stats, shutdown

__all__ = [
    "HandleChain",
    "HandleLedger",
    "MemoryStats",
    "NativeBinding",
    "NativeImageHandle",
    "Subsystem",
    "get_subsystem",
    "initialize",
    "memory_stats",
    "shutdown",
]
