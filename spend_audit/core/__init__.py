"""
Core modules for Spend Audit.

This package contains the usage normalization, aggregation,
recommendation and scoring logic.
"""
