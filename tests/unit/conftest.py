"""Shared pytest fixtures for unit tests."""

import pytest

from argocd_operator.utils.credentials import CredentialFactory
from tests.fixtures.argocd_resources import make_instance
from tests.utils.fake_store import FakeObjectStore


@pytest.fixture
def store():
    """Empty in-memory object store."""
    return FakeObjectStore()


@pytest.fixture(scope="session")
def factory():
    """Credential factory with the cheapest bcrypt cost."""
    return CredentialFactory(hash_rounds=4)


@pytest.fixture
def instance():
    """ArgoCD instance with an empty spec."""
    return make_instance()


@pytest.fixture(autouse=True)
def clear_cluster_config_namespaces(monkeypatch):
    """Keep the cluster-config allow-list out of tests unless set explicitly."""
    monkeypatch.delenv("ARGOCD_CLUSTER_CONFIG_NAMESPACES", raising=False)
