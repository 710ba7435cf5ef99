"""Shared models, protocols, constants, and utilities for the Android pipeline.

This package is the foundational layer for ``commands``, ``stages`` and
``android_orchestrator``.  It has no dependency on any of them.
"""

__version__ = "1.0.0"
