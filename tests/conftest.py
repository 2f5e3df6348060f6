"""
Pytest configuration and shared fixtures for Dashboard Patcher tests.
"""
import os
import sys
from types import SimpleNamespace
from unittest.mock import Mock, MagicMock, patch

import pytest

# Console-only logging and short timeouts while testing
os.environ.setdefault('PATCHER_ENV', 'testing')

# Add the project root to Python path so we can import from api/
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from api.server import create_app
from utils.database_manager import ConnectionManager


LOCAL_URI = 'mongodb://localhost:27017/app'
OTHER_URI = 'mongodb://other-host:27017/app'


class FakeCollection:
    """In-memory stand-in for the dashboards collection."""

    def __init__(self, documents=None):
        self.documents = [dict(doc) for doc in (documents or [])]

    def find(self, query):
        assert query == {}
        return [dict(doc) for doc in self.documents]

    def update_one(self, query, update):
        for doc in self.documents:
            if doc['_id'] == query['_id']:
                changes = {k: v for k, v in update['$set'].items() if doc.get(k) != v}
                doc.update(changes)
                return Mock(matched_count=1, modified_count=1 if changes else 0)
        return Mock(matched_count=0, modified_count=0)


@pytest.fixture
def dashboard_doc():
    """A single stored dashboard record."""
    return {
        '_id': ObjectId('64b7f0c2a1b2c3d4e5f60718'),
        'guildID': '123456789012345678',
        'url': 'https://panel.example.com',
        'port': 3000
    }


@pytest.fixture
def mongo_servers():
    """Fake MongoDB deployments keyed by URI, with MongoClient patched to reach them.

    Put a FakeCollection under a URI in ``collections`` to give it data, and add
    the URI to ``unreachable`` to make its ping fail. A message under a URI in
    ``rejected`` makes the constructor raise ValueError, as the driver does for
    a URI it cannot parse.
    """
    collections = {}
    unreachable = set()
    rejected = {}
    clients = []

    def make_client(uri, **kwargs):
        if uri in rejected:
            raise ValueError(rejected[uri])
        client = MagicMock(name=f'MongoClient({uri})')
        client.uri = uri
        client.options = kwargs
        collection = collections.setdefault(uri, FakeCollection())
        database = MagicMock(name='Database')
        database.__getitem__.return_value = collection
        client.get_default_database.return_value = database
        if uri in unreachable:
            client.admin.command.side_effect = ServerSelectionTimeoutError(f'{uri}: connection refused')
        else:
            client.admin.command.return_value = {'ok': 1.0}
        clients.append(client)
        return client

    with patch('utils.database_manager.MongoClient', side_effect=make_client) as mock_class:
        yield SimpleNamespace(
            collections=collections,
            unreachable=unreachable,
            rejected=rejected,
            clients=clients,
            mock_class=mock_class
        )


@pytest.fixture
def manager(mongo_servers):
    """Fresh connection manager wired to the fake deployments."""
    return ConnectionManager()


@pytest.fixture
def app(manager):
    return create_app(manager)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def connected_client(client, mongo_servers, dashboard_doc):
    """Test client already connected to LOCAL_URI holding one dashboard."""
    mongo_servers.collections[LOCAL_URI] = FakeCollection([dashboard_doc])
    response = client.post('/api/connect', json={'uri': LOCAL_URI})
    assert response.status_code == 200
    return client
