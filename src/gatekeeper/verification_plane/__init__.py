"""
gatekeeper — verification plane

Purpose
- Validate a merged workspace before the integration branch is allowed to keep it.
"""

from gatekeeper.verification_plane.gate import ValidationGate, Validator

__all__ = ["ValidationGate", "Validator"]
