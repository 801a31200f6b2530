#!/usr/bin/env python3
"""Research agent - a decision loop with retries, a budget and a trace.

Flow:
    decide -(search)-> search -> decide
    decide -(answer)-> answer -> END

The decide step stands in for an LLM call: it searches until it has two
notes, then answers. search fails on its first attempt to show retries.

Usage:
    python examples/research_agent.py "what is a workflow engine?"
    synaptic run examples/research_agent.py --shared '{"question": "why?"}' --max-steps 10
"""

import sys

from synaptic import (
    END,
    Budget,
    DecisionNode,
    ExecutionTrace,
    FunctionNode,
    Graph,
    RetryPolicy,
)
from synaptic.core.logging_config import configure_logging


def fake_llm(context):
    return "ANSWER" if len(context.get("notes", [])) >= 2 else " search "


class FlakySearch:
    """Search backend that fails every other call."""

    def __init__(self):
        self.calls = 0

    def __call__(self, query):
        self.calls += 1
        if self.calls % 2:
            raise ConnectionError("search backend unavailable")
        return f"note {self.calls // 2} about {query!r}"


def keep_note(shared, params, note):
    shared.setdefault("notes", []).append(note)
    return "searched"


def write_answer(shared, params, _):
    shared["answer"] = " / ".join(shared["notes"])
    return "done"


graph = Graph("research", max_steps=20)
decide = graph.register(
    DecisionNode(["search", "answer"], decide=fake_llm, default_action="answer"),
    "decide",
    start=True,
)
search = graph.register(
    FunctionNode(
        prepare=lambda shared, params: shared["question"],
        execute=FlakySearch(),
        finalize=keep_note,
        policy=RetryPolicy(max_attempts=3, retry_delay_ms=10),
    ),
    "search",
)
answer = graph.register(FunctionNode(finalize=write_answer), "answer")

decide - "search" >> search
decide - "answer" >> answer
search - "searched" >> decide
answer - "done" >> END


if __name__ == "__main__":
    configure_logging(level="INFO")
    question = " ".join(sys.argv[1:]) or "what is a workflow engine?"

    trace = ExecutionTrace()
    shared = graph.run({"question": question}, trace=trace, budget=Budget(max_steps=10))

    print(shared["answer"])
    for step in trace.steps:
        print(f"  {step.step_id:8} {step.node_type:10} -> {step.action}")
