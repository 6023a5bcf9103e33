"""
Core modules for AI Usage Meter.

This package contains token usage extraction, model pricing resolution
and cost calculation.
"""
