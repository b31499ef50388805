"""
MongoDB client used as the ingest sink.

Provides:
- Lazy connection management
- Single-document inserts into a collection named at call time
- Wrapping of driver failures into DatabaseError, and of documents MongoDB
  can never store into DocumentEncodeError
"""

from typing import Any, Dict, Optional

from bson.errors import BSONError
from loguru import logger
from pymongo import MongoClient
from pymongo.errors import InvalidName, PyMongoError

from app.utils.config import Settings
from domains.file_ingest.errors import DatabaseError, DocumentEncodeError


class MongoIngestClient:
    """MongoDB client that inserts parsed documents by routing key."""

    def __init__(
        self,
        settings: Settings,
        uri: str = None,
        database: str = None,
        server_selection_timeout_ms: int = None,
    ):
        """Initialize MongoDB client."""
        self.uri = uri or settings.mongo_uri
        self.database_name = database or settings.mongo_database
        self.server_selection_timeout_ms = (
            server_selection_timeout_ms or settings.mongo_server_selection_timeout_ms
        )

        self._client: Optional[MongoClient] = None

    def connect(self):
        """Establish connection to MongoDB."""
        if self._client is None:
            logger.info(f"Connecting to MongoDB at {self.uri}...")
            self._client = MongoClient(
                self.uri,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                tz_aware=True,
            )
            logger.debug("MongoDB client created")

    def close(self):
        """Close MongoDB connection."""
        if self._client:
            logger.info("Closing MongoDB connection...")
            self._client.close()
            self._client = None

    @property
    def client(self) -> MongoClient:
        """Get client, connecting if necessary."""
        if self._client is None:
            self.connect()
        return self._client

    @property
    def database(self):
        """Get the configured database handle."""
        return self.client[self.database_name]

    def insert_document(self, collection: str, document: Dict[str, Any]) -> Any:
        """
        Insert one document as a new record.

        Args:
            collection: Destination collection name (created on demand)
            document: Document body

        Returns:
            The inserted record's ``_id``

        Raises:
            DocumentEncodeError: If the document or collection name can never be stored
            DatabaseError: If the driver reports any other failure
        """
        # insert_one mutates its argument by adding _id
        record = dict(document)
        try:
            result = self.database[collection].insert_one(record)
        except (OverflowError, BSONError, InvalidName) as e:
            raise DocumentEncodeError(
                f"Document for '{collection}' cannot be stored: {e}"
            ) from e
        except PyMongoError as e:
            # Drop the pool so nothing is held open across a retry delay
            self.close()
            raise DatabaseError(
                f"Insert into '{collection}' failed: {e}", collection=collection
            ) from e

        logger.debug(f"Inserted {result.inserted_id} into {self.database_name}.{collection}")
        return result.inserted_id
