#!/usr/bin/env python3
"""QA graph - summarize text, extract keywords for long input, then output.

Flow:
    Summarize -(long)-> ExtractKeywords -(done)-> Output -(done)-> END
    Summarize -(short)-> Output

Usage:
    python examples/qa_graph.py "Some text to summarize"
    synaptic run examples/qa_graph.py --shared '{"text": "Some text"}' --trace
    synaptic validate examples/qa_graph.py
"""

import sys

from synaptic import END, Graph, Node
from synaptic.core.logging_config import configure_logging

LONG_TEXT = 80


class Summarize(Node):
    def prepare(self, shared, params):
        return shared["text"]

    def execute(self, text):
        first = text.split(". ")[0]
        return first if len(first) <= LONG_TEXT else first[:LONG_TEXT] + "..."

    def finalize(self, shared, params, summary):
        shared["summary"] = summary
        return "long" if len(shared["text"]) > LONG_TEXT else "short"


class ExtractKeywords(Node):
    def prepare(self, shared, params):
        return shared["text"], params.get("min_length", 6)

    def execute(self, local_input):
        text, min_length = local_input
        words = {word.strip(".,;:!?").lower() for word in text.split()}
        return sorted(word for word in words if len(word) >= min_length)

    def finalize(self, shared, params, keywords):
        shared["keywords"] = keywords
        return "done"


class Output(Node):
    def prepare(self, shared, params):
        return shared["summary"], shared.get("keywords")

    def execute(self, local_input):
        summary, keywords = local_input
        if keywords:
            return f"{summary}\nKeywords: {', '.join(keywords)}"
        return summary

    def finalize(self, shared, params, text):
        shared["final_output"] = text
        return "done"


graph = Graph("qa")
summarize = graph.register(Summarize(), "Summarize", start=True)
keywords = graph.register(ExtractKeywords(), "ExtractKeywords", params={"min_length": 7})
output = graph.register(Output(), "Output")

summarize - "long" >> keywords
summarize - "short" >> output
keywords - "done" >> output
output - "done" >> END


if __name__ == "__main__":
    configure_logging()
    text = " ".join(sys.argv[1:]) or (
        "Workflow engines split work into small nodes. Each node prepares its input, "
        "executes, and writes results back to a shared store."
    )
    shared = graph.run({"text": text})
    print(shared["final_output"])
