"""
File Ingestion Collectors

Long-running services that monitor the drop folder and process files:
- json_collector.py - Startup sweep, live watching and the per-file retry loop
"""
