"""USB installer for Arch Linux and Alpine Linux (Python-first, stack-driven).

Core design goals:
- Every acquired resource is on an explicit lifecycle stack
- Strict LIFO release on success, failure and interrupt
- Stages run once, in order, never retried
- Data-driven distro manifests
- Centralized logging
"""

__all__ = []
