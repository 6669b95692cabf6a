import pytest
from botocore.model import ServiceModel

from shapewire.spec import load_service


@pytest.fixture(scope="session")
def swf_service() -> ServiceModel:
    return load_service("swf")
