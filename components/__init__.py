# components/__init__.py
"""
IdleBench components package.

Contains engine adapters and device profilers used by the idle sweep.
"""

__all__ = ["engines", "devices"]
