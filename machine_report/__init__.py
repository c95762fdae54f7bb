"""
One-shot machine report: OS, CPU, memory, disk, network and session facts as a fixed-width table or JSON.
"""

__all__ = [
    "cli",
    "collectors",
    "config",
    "errors",
    "fast_mode",
    "formatting",
    "providers",
    "report",
    "system_state",
]
__version__ = "0.1.0"
