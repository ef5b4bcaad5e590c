import os
import sys

import pytest
from fastapi.testclient import TestClient

# Add the parent directory to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config import BucketConfig
from fsbucket.services.signature import build_signed_query
from main import create_app

SECRET_KEY = "k3Yf0rT3sts0nlyQw8zLmNpXrT2vB9cD4eF6gH1jK5lM7nP0qR3sT8uV2wX6yZ4a"


@pytest.fixture
def bucket_config(tmp_path):
    return BucketConfig(base_dir=tmp_path / "bucket", secret_key=SECRET_KEY)


@pytest.fixture
def app(bucket_config):
    return create_app(bucket_config)


@pytest.fixture
def client(app):
    # Entering the client runs the app lifespan, which initializes storage
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signed_query():
    """Build the signature/expires query for a method and path."""
    def _signed_query(method, path, ttl_seconds=60, secret=SECRET_KEY):
        return build_signed_query(method, path, secret, ttl_seconds)
    return _signed_query
