"""Pytest configuration and fixtures for the medication safety tests."""

from collections.abc import Iterator

import pytest

from medsafety.services.knowledge_base import KnowledgeBase, reset_knowledge_base
from medsafety.services.medication_validation import reset_medication_validation_service


@pytest.fixture(autouse=True)
def reset_singletons() -> Iterator[None]:
    """Give every test a freshly built knowledge base and service."""
    reset_knowledge_base()
    reset_medication_validation_service()
    yield
    reset_knowledge_base()
    reset_medication_validation_service()


@pytest.fixture
def kb() -> KnowledgeBase:
    """Knowledge base built from the built-in tables only."""
    return KnowledgeBase()
