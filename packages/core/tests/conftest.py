import pytest

from fakes import NOW, FakePlatform, FakeRepository
from prstack_core.config import DEFAULT_CONFIG


@pytest.fixture
def config():
    return {**DEFAULT_CONFIG, "github_repository": "acme/widgets", "github_token": None}


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def platform(repo):
    return FakePlatform(repo)


@pytest.fixture
def clock():
    return lambda: NOW
