"""
Agent implementations for the crypto complaints pipeline.

Contains the modules that move complaints through the pipeline:
- Ingestion (incremental, paginated fetch)
- Relevance Filter
- Narrative Categorization
- LLM Classification (batch, cached)
- Aggregation (dataset-level statistics and exports)
"""
