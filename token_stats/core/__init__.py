"""
Core modules for token-stats.

This package contains day-range resolution, pricing, the incremental
scanner, period aggregation and usage analytics.
"""
