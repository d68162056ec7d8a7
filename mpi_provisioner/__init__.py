"""MPI image provisioner (ordered, fail-fast build pipeline).

Core design goals:
- Steps run strictly in declaration order
- First failure halts the whole build
- Pinned build variables for reproducible images
- Architecture-aware package selection
- Centralized logging
"""

__all__ = []
