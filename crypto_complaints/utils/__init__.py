"""
Utility modules for the crypto complaints pipeline.

Cross-cutting concerns:
- Retry: Reusable retry policy with typed results
- Storage: File I/O helpers for run reports
- Text analysis: Whole-word keyword matching and narrative statistics
"""
