"""Tests for the pull HTTP API."""

import asyncio

import pytest
from fastapi.testclient import TestClient

from resymo.collectors.memory import MemoryCollector
from resymo.config import HttpServerOptions
from resymo.registry import Registry
from resymo.uplink import http_server
from resymo.uplink.http_server import create_app
from resymo.utils import ConfigError


class StaticCollector:
    def __init__(self, value):
        self.value = value

    async def collect(self):
        return self.value

    def describe_discovery(self):
        return []


class BrokenCollector(StaticCollector):
    async def collect(self):
        raise RuntimeError('Command failed: rc == 1')


@pytest.fixture
def registry():
    registry = Registry()
    registry.register('memory', MemoryCollector())
    registry.register('zeta', StaticCollector({'z': 1}))
    registry.register('alpha', StaticCollector({'a': 2}))
    return registry


class TestCollectEndpoints:
    """Reading collectors over HTTP."""

    def test_index(self, registry):
        client = TestClient(create_app(registry))
        response = client.get('/')
        assert response.status_code == 200
        assert response.text == ''

    def test_collect_memory(self, registry):
        client = TestClient(create_app(registry))
        response = client.get('/collect/memory')

        assert response.status_code == 200
        data = response.json()
        for key in ('free', 'total', 'used', 'available'):
            assert data[key] >= 0
        assert data['total'] >= data['available']

    def test_unknown_collector(self, registry):
        client = TestClient(create_app(registry))
        assert client.get('/collect/doesnotexist').status_code == 404

    def test_api_prefix(self, registry):
        client = TestClient(create_app(registry))
        assert client.get('/api/v1/collect/alpha').json() == {'a': 2}
        assert client.get('/api/v1/collect/doesnotexist').status_code == 404

    def test_collect_all_sorted(self, registry):
        client = TestClient(create_app(registry))
        data = client.get('/collect').json()

        assert list(data) == ['alpha', 'memory', 'zeta']
        assert data['zeta'] == {'z': 1}

    def test_collector_failure(self, registry):
        registry.register('broken', BrokenCollector({}))
        client = TestClient(create_app(registry))

        for path in ('/collect/broken', '/collect'):
            response = client.get(path)
            assert response.status_code == 500
            assert response.json() == {'type': 'CollectorError', 'message': 'Command failed: rc == 1'}


class TestAuthentication:
    """Bearer token access control."""

    def test_missing_token(self, registry):
        client = TestClient(create_app(registry, token='secret'))
        response = client.get('/collect/alpha')

        assert response.status_code == 401
        assert response.headers['www-authenticate'].startswith('Bearer')

    def test_wrong_token(self, registry):
        client = TestClient(create_app(registry, token='secret'))
        response = client.get('/api/v1/collect/alpha', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    def test_valid_token(self, registry):
        client = TestClient(create_app(registry, token='secret'))
        response = client.get('/collect/alpha', headers={'Authorization': 'Bearer secret'})

        assert response.status_code == 200
        assert response.json() == {'a': 2}

    def test_index_is_public(self, registry):
        client = TestClient(create_app(registry, token='secret'))
        assert client.get('/').status_code == 200

    def test_run_requires_token(self, registry, logger):
        with pytest.raises(ConfigError, match='disableAuthentication'):
            asyncio.run(http_server.run(HttpServerOptions(), registry, logger))
