"""
Persistence Module.

Record Store: deduplicated complaint records.
Classification Cache: precomputed complaint id -> category labels.
"""
