"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for backend_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from api_operator.config import ControllerConfig  # noqa: E402
from api_operator.manager import ResourceManager  # noqa: E402
from api_operator.metrics import MetricsSink  # noqa: E402
from api_operator.models import ApiResource  # noqa: E402
from api_operator.reconciler import Reconciler  # noqa: E402
from backend_mock import MockApiBackend  # noqa: E402

TEST_ACCOUNT_ID = "123456789012"
TEST_REGION = "us-west-2"

SAMPLE_OPENAPI = """\
openapi: 3.0.1
info:
  title: pets
  version: "1.0"
paths:
  /pets:
    get:
      x-amazon-apigateway-integration:
        type: HTTP_PROXY
        httpMethod: GET
        uri: https://example.com/pets
        payloadFormatVersion: "1.0"
"""


def make_resource(
    spec: dict | None = None,
    status: dict | None = None,
    name: str = "my-api",
    namespace: str = "default",
    generation: int = 1,
) -> ApiResource:
    """Build an ApiResource from manifest-style (camelCase) data."""
    data: dict = {
        "metadata": {"name": name, "namespace": namespace, "generation": generation},
        "spec": spec or {},
    }
    if status is not None:
        data["status"] = status
    return ApiResource.model_validate(data)


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig(account_id=TEST_ACCOUNT_ID, region=TEST_REGION, controller_version="1.2.3")


@pytest.fixture
def backend() -> MockApiBackend:
    return MockApiBackend(region=TEST_REGION)


@pytest.fixture
def metrics() -> MetricsSink:
    return MetricsSink()


@pytest.fixture
def manager(config: ControllerConfig, backend: MockApiBackend, metrics: MetricsSink) -> ResourceManager:
    return ResourceManager(config, backend, metrics=metrics)


@pytest.fixture
def reconciler(manager: ResourceManager) -> Reconciler:
    return Reconciler(manager)
