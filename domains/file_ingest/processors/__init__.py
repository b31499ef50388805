"""
File Ingestion Processors

Shared processing utilities for file ingestion:
- readiness.py - Exclusive-open check for files still being written
- transformer.py - JSON parsing, CreatedAt date rewrite and Action routing key
"""
