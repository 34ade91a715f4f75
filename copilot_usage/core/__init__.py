"""
Core modules for Copilot Usage Analyzer.

This package contains normalization, filtering, aggregation, quota
computation and the chunked ingestion pipeline.
"""
