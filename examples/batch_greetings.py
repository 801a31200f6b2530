#!/usr/bin/env python3
"""Batch greetings - one graph run per name.

BatchFlow re-runs the greet -> shout sub-graph once per element. Each
element's params carry the name; results land in the shared store.

Usage:
    python examples/batch_greetings.py Ann Bo Cy
    synaptic run examples/batch_greetings.py --graph greet_all --trace
"""

import sys

from synaptic import END, BatchFlow, FunctionNode, SynchronizedStore


def greet(shared, params, _):
    shared.setdefault("greetings", {})[params["name"]] = f"Hello, {params['name']}"
    return "greeted"


def shout(shared, params, _):
    greeting = shared["greetings"][params["name"]]
    shared["greetings"][params["name"]] = greeting.upper() + "!"
    return "done"


def names(shared, params):
    return shared.get("names", ["Ann", "Bo"])


greet_all = BatchFlow("greet_all", items=names, params_fn=lambda name: {"name": name})
greet_node = greet_all.register(FunctionNode(finalize=greet), "greet", start=True)
shout_node = greet_all.register(FunctionNode(finalize=shout), "shout")
greet_node - "greeted" >> shout_node
shout_node - "done" >> END

# Same sub-graph, element runs on a thread pool.
greet_parallel = BatchFlow(
    "greet_parallel", items=names, params_fn=lambda name: {"name": name}, max_workers=4
)
first = greet_parallel.register(FunctionNode(finalize=greet), "greet", start=True)
second = greet_parallel.register(FunctionNode(finalize=shout), "shout")
first - "greeted" >> second
second - "done" >> END


if __name__ == "__main__":
    people = sys.argv[1:] or ["Ann", "Bo", "Cy"]

    shared = greet_all.run({"names": people})
    for name, greeting in shared["greetings"].items():
        print(f"{name}: {greeting}")

    # Concurrent element runs need a store that tolerates concurrent writers.
    store = SynchronizedStore({"names": people, "greetings": {}})
    greet_parallel.run(store)
    print(sorted(store["greetings"].values()))
