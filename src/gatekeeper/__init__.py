"""
gatekeeper — integration gatekeeper for multi-contributor repositories.

File: src/gatekeeper/__init__.py

Purpose
- Package root. Reviews contributor branches, enforces per-contributor path
  boundaries, classifies risk, resolves trivial conflicts, validates merged
  trees and advances accepted work into the main line.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
