"""Operator-facing command line surface."""

from gatekeeper.ui.render import CLIRenderer, create_renderer

__all__ = ["CLIRenderer", "create_renderer"]
