"""
Root conftest.py for Phrontier tests.

Shared fixtures wire the service registry to in-process stand-ins:
an in-memory list backend, a mocked S3 client and a mocked Gemini client.
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

# Ensure the project root is in the path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from phrontier.assets import AssetStore
from phrontier.enrichment import EnrichmentGateway
from phrontier.kv import MemoryListBackend
from phrontier.models import ResourceDraft
from phrontier.services import services
from phrontier.settings import Settings
from phrontier.store import ResourceStore

TEST_BUCKET = "phrontier-test"


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )


def pytest_collection_modifyitems(config, items):
    """Mark WebSocket tests by name."""
    for item in items:
        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Shared Fixtures
# ============================================================================


def make_draft(**overrides) -> ResourceDraft:
    """A valid draft; keyword overrides use snake_case field names."""
    data = {
        "title": "Projectile Motion",
        "category": "Mechanics",
        "sub_category": "Kinematics",
        "author": "Dr. Aryabhata",
        "description": "Explore trajectories with varying velocity and angles.",
        "user_guide": "Adjust the sliders and press Fire.",
        "content_url": "https://example.com/sim",
        "learning_outcomes": ["Understand parabolic paths"],
    }
    data.update(overrides)
    return ResourceDraft(**data)


@pytest.fixture
def draft_factory():
    return make_draft


@pytest.fixture
def genai_client():
    """Mocked ``google.genai.Client`` exposing ``aio.models.generate_content``."""
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(text='["Relate range to angle", "Decompose velocity", "Predict flight time"]')
    )
    return client


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"abc"'}
    return client


@pytest.fixture
def settings():
    return Settings(
        kv_url="memory://",
        max_resources=20,
        blob_bucket=TEST_BUCKET,
        blob_public_url="https://cdn.example.com",
        ai_api_key="test-key",
    )


@pytest.fixture
def store():
    """A resource store on a fresh memory backend, AI not configured."""
    return ResourceStore(
        backend=MemoryListBackend(),
        max_resources=20,
        enrichment=EnrichmentGateway(client=None),
    )


@pytest.fixture
def configured_services(settings, store, s3_client, genai_client):
    """Point the global registry at in-process components for one test."""
    enrichment = EnrichmentGateway(client=genai_client, outcomes_timeout=2, thumbnail_timeout=2)
    store.enrichment = enrichment
    assets = AssetStore(
        bucket=TEST_BUCKET,
        client=s3_client,
        public_url="https://cdn.example.com",
        max_bytes=1024 * 1024,
    )
    services.configure(settings=settings, store=store, assets=assets, enrichment=enrichment)
    yield services
    services.reset()


@pytest.fixture
def client(configured_services):
    """A TestClient for the app with the registry configured."""
    from fastapi.testclient import TestClient

    from main import app

    with TestClient(app) as c:
        yield c
