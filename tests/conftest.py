"""Pytest configuration and fixtures."""

import logging

import pytest

from synaptic.core import logging_config
from synaptic.core.config import MAX_STEPS_ENV, STRICT_TRANSITIONS_ENV
from synaptic.core.nodes import END, FunctionNode, Graph, Node


@pytest.fixture(autouse=True)
def clean_engine_env(monkeypatch):
    """Keep SYNAPTIC_* variables from the outer environment out of graph defaults."""
    monkeypatch.delenv(MAX_STEPS_ENV, raising=False)
    monkeypatch.delenv(STRICT_TRANSITIONS_ENV, raising=False)


class Summarize(Node):
    """Summarizes shared["text"]; long summaries need keyword extraction."""

    def prepare(self, shared, params):
        return shared["text"]

    def execute(self, text):
        return text[:50]

    def finalize(self, shared, params, summary):
        shared["summary"] = summary
        return "long" if len(shared["text"]) > 20 else "short"


class ExtractKeywords(Node):
    def prepare(self, shared, params):
        return shared["text"]

    def execute(self, text):
        return sorted({word for word in text.split() if len(word) > 4})

    def finalize(self, shared, params, keywords):
        shared["keywords"] = keywords
        return "done"


class Output(Node):
    def prepare(self, shared, params):
        return shared["summary"], shared.get("keywords")

    def execute(self, local_input):
        summary, keywords = local_input
        if keywords:
            return f"{summary} [{', '.join(keywords)}]"
        return summary

    def finalize(self, shared, params, text):
        shared["final_output"] = text
        return "done"


def build_qa_graph(graph_id: str = "qa") -> Graph:
    """Summarize -(long)-> ExtractKeywords -> Output, Summarize -(short)-> Output."""
    graph = Graph(graph_id)
    summarize = graph.register(Summarize(), "Summarize", start=True)
    keywords = graph.register(ExtractKeywords(), "ExtractKeywords")
    output = graph.register(Output(), "Output")
    summarize - "long" >> keywords
    summarize - "short" >> output
    keywords - "done" >> output
    output - "done" >> END
    return graph


@pytest.fixture
def qa_graph():
    """The summarize/keywords/output routing graph."""
    return build_qa_graph()


def record(name: str, action: str | None = None) -> FunctionNode:
    """Node that appends its name to shared["visited"] and returns action."""

    def finalize(shared, params, result):
        shared.setdefault("visited", []).append(name)
        return action

    return FunctionNode(finalize=finalize, name=name)


@pytest.fixture
def recorder():
    """Factory for nodes that record their name in shared["visited"]."""
    return record


@pytest.fixture
def isolated_logging(monkeypatch):
    """Undo configure_logging changes to the root logger after the test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    monkeypatch.setattr(logging_config, "_configured", False)
    for name in ("SYNAPTIC_LOG_LEVEL", "SYNAPTIC_LOG_FORMAT", "SYNAPTIC_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
