"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import LimaboxModalCLI, main

__all__ = ['LimaboxModalCLI', 'main']
