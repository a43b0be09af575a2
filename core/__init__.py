# core/__init__.py
"""
Measurement protocol: trial runner, idle sweep, statistics and reporting.
"""
