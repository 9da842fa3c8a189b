"""
Storage layer: the persisted per-provider scan cache.
"""
