"""
token-stats: incremental token usage and cost tracking for AI coding assistants.
"""

__version__ = "0.1.0"
