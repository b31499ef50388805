"""
File Ingestion Domain

Watches a drop folder for JSON documents and stores them in MongoDB:
- Each file's ``Action`` field selects the destination collection
- ``CreatedAt`` is stored as a native date
- Files are removed once processing finishes, successfully or not
"""
