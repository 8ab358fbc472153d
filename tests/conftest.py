"""Shared fixtures: a Backend over a temporary data directory and a scripted knowledge base."""

from typing import Callable, Dict, List, Optional, Tuple

import pytest

from kb_discovery.backend import Backend
from kb_discovery.entities import QuestionInput


class FakeKnowledgeBase:
    """Stands in for KnowledgeBaseClient. `handler(workspace, text)` returns the reply or raises."""

    def __init__(self, handler: Optional[Callable[[str, str], str]] = None):
        self.handler = handler or (lambda workspace, text: "OK:" + text)
        self.calls: List[Tuple[str, str]] = []
        self.workspaces: List[Dict[str, str]] = [{"slug": "aws-ws", "name": "AWS"}]

    def send_message(self, workspace_slug: str, message: str, mode: str = "query") -> str:
        self.calls.append((workspace_slug, message))
        return self.handler(workspace_slug, message)

    def list_workspaces(self):
        return list(self.workspaces)


@pytest.fixture
def kb():
    return FakeKnowledgeBase()


@pytest.fixture
def backend(tmp_path, kb):
    return Backend(data_dir=str(tmp_path / "data"), kb_client=kb)


@pytest.fixture
def aws_product(backend):
    """'AWS Storage' with a sizing question, a general question and a matrix question."""
    backend.mappings.create_mapping("Cloud Sizing", "aws-ws")
    backend.mappings.create_mapping("Cloud General", "general-ws")
    backend.mappings.create_mapping("Cloud Matrix", "matrix-ws")
    return backend.products.create_product(
        "AWS Storage",
        [
            QuestionInput(question="How much data do you store?", category="Cloud Sizing"),
            QuestionInput(question="Which region do you run in?", category="Cloud General"),
            QuestionInput(question="Which services do you need?", category="Cloud Matrix"),
        ],
    )
