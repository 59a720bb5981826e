"""
Inference backends for tree_kit.

Backends are kept in a separate module so pre/post-processing stays
lightweight and can be used without installing an inference runtime.
"""

from __future__ import annotations

__all__ = []
