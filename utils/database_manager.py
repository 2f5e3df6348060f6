"""
Process-wide MongoDB connection manager.
Holds at most one live client; connecting again replaces and closes the old one.
"""
import base64
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

import certifi
from bson import Decimal128, ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import get_settings
from api.errors import NotFoundError, StateError, UpstreamError
from api.logger import get_logger, LogCategory, OperationTimer, mask_uri
from api.validation import DashboardUpdate, validate_object_id, validate_uri


def serialize_document(value: Any) -> Any:
    """
    Make a BSON document JSON friendly.

    ObjectId and UUID become strings, datetime becomes ISO-8601, Decimal128 its
    decimal string and binary data base64. Any other non-JSON type falls back
    to its string form so a listing never fails on an odd field.
    """
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    elif isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    elif isinstance(value, (str, int, float, bool, type(None))):
        return value
    elif isinstance(value, (ObjectId, UUID)):
        return str(value)
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, Decimal128):
        return str(value.to_decimal())
    elif isinstance(value, (bytes, bytearray)):
        # bson.Binary is a bytes subclass
        return base64.b64encode(bytes(value)).decode('ascii')
    return str(value)


class ConnectionManager:
    """Owns the single MongoDB client slot."""

    def __init__(self, config=None):
        self._config = config or get_settings()
        self._lock = threading.Lock()
        self._client: Optional[MongoClient] = None

    def _client_options(self, uri: str) -> Dict[str, Any]:
        db_config = self._config.database
        options = {
            'serverSelectionTimeoutMS': db_config.server_selection_timeout_ms,
            'connectTimeoutMS': db_config.connect_timeout_ms,
        }
        # SRV URIs imply TLS; use certifi's CA bundle for those
        if db_config.use_certifi_for_srv and uri.startswith('mongodb+srv://'):
            options['tlsCAFile'] = certifi.where()
        return options

    def _close_quietly(self, client: MongoClient, operation: str):
        try:
            client.close()
        except PyMongoError as e:
            get_logger().warning(LogCategory.CONNECTION, operation,
                                 "Closing previous client failed, continuing", error=str(e))

    def is_connected(self) -> bool:
        return self._client is not None

    def connect(self, uri: str) -> None:
        """Open a client for uri, ping it and install it in place of the current one.

        The previous client is closed first even if the new one then fails,
        so a failed connect always leaves the manager disconnected.
        """
        uri = validate_uri(uri)
        logger = get_logger()

        with self._lock:
            if self._client is not None:
                old = self._client
                self._client = None
                self._close_quietly(old, "close_previous")

            with OperationTimer(logger, LogCategory.CONNECTION, "connect", data={'uri': mask_uri(uri)}):
                client = None
                try:
                    client = MongoClient(uri, **self._client_options(uri))
                    client.admin.command('ping')
                except (PyMongoError, ValueError) as e:
                    # ValueError: the driver rejected the URI itself (bad port, bad option)
                    if client is not None:
                        self._close_quietly(client, "close_failed_client")
                    raise UpstreamError("Failed to connect to MongoDB", details=str(e)) from e

                self._client = client

    def disconnect(self) -> bool:
        """Close the client if there is one. Returns whether one was closed."""
        with self._lock:
            client = self._client
            self._client = None

        if client is None:
            return False

        self._close_quietly(client, "disconnect")
        get_logger().info(LogCategory.CONNECTION, "disconnect", "Disconnected from MongoDB")
        return True

    def _collection(self):
        client = self._client
        if client is None:
            raise StateError()
        db = client.get_default_database(default=self._config.database.default_database)
        return db[self._config.database.collection_name]

    def list_dashboards(self) -> List[Dict[str, Any]]:
        """Return every record of the dashboards collection, JSON friendly."""
        collection = self._collection()
        try:
            documents = list(collection.find({}))
        except PyMongoError as e:
            get_logger().error(LogCategory.DATABASE, "list_dashboards",
                               "Error fetching dashboards", error=str(e))
            raise UpstreamError("Failed to fetch dashboards", details=str(e)) from e

        get_logger().debug(LogCategory.DATABASE, "list_dashboards",
                           f"Fetched {len(documents)} dashboard record(s)")
        return [serialize_document(doc) for doc in documents]

    def update_dashboard(self, dashboard_id: str, update: DashboardUpdate) -> int:
        """Set guildID, url and port on one record. Returns the modified count."""
        collection = self._collection()
        dashboard_id = validate_object_id(dashboard_id)

        try:
            result = collection.update_one(
                {'_id': ObjectId(dashboard_id)},
                {'$set': update.to_document()}
            )
        except PyMongoError as e:
            get_logger().error(LogCategory.DATABASE, "update_dashboard",
                               f"Error updating dashboard {dashboard_id}", error=str(e))
            raise UpstreamError("Failed to update dashboard", details=str(e)) from e

        if result.matched_count == 0:
            raise NotFoundError("Dashboard not found")

        get_logger().info(LogCategory.DATABASE, "update_dashboard",
                          f"Updated dashboard {dashboard_id}",
                          data={'modified_count': result.modified_count})
        return result.modified_count


# Global instance for easy access
connection_manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    """Get the shared connection manager."""
    return connection_manager
