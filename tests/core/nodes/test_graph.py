"""Tests for synaptic.core.nodes.graph module."""

import logging
import threading
from collections import UserDict

import pytest

from synaptic.core.config import EngineConfig
from synaptic.core.nodes.actions import DEFAULT_ACTION, END
from synaptic.core.nodes.async_nodes import AsyncNode
from synaptic.core.nodes.base import FunctionNode, Node
from synaptic.core.nodes.budget import Budget
from synaptic.core.nodes.cancellation import CancellationToken, CancelledError
from synaptic.core.nodes.errors import (
    BudgetExceededError,
    DuplicateNodeError,
    DuplicateTransitionError,
    FallbackError,
    GraphDefinitionError,
    UnresolvedTransitionError,
)
from synaptic.core.nodes.graph import Graph, NodeHandle
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.trace import ExecutionTrace


class Counter(Node):
    """Increments shared["count"]; loops until it reaches shared["limit"]."""

    def prepare(self, shared, params):
        return shared.get("count", 0)

    def execute(self, count):
        return count + 1

    def finalize(self, shared, params, count):
        shared["count"] = count
        return "again" if count < shared.get("limit", float("inf")) else "stop"


class TestGraphRouting:
    """Tests for running graphs."""

    def test_short_text_route(self, qa_graph):
        """Test short text skips keyword extraction."""
        trace = ExecutionTrace()
        shared = qa_graph.run({"text": "tiny text"}, trace=trace)

        assert trace.visited == ["Summarize", "Output"]
        assert trace.actions == ["short", "done"]
        assert shared["final_output"] == "tiny text"
        assert "keywords" not in shared

    def test_long_text_route(self, qa_graph):
        """Test long text goes through keyword extraction."""
        trace = ExecutionTrace()
        shared = qa_graph.run({"text": "a fairly lengthy passage about graphs"}, trace=trace)

        assert trace.visited == ["Summarize", "ExtractKeywords", "Output"]
        assert shared["keywords"] == ["about", "fairly", "graphs", "lengthy", "passage"]
        assert shared["final_output"].endswith("[about, fairly, graphs, lengthy, passage]")

    def test_run_returns_same_store(self, qa_graph):
        """Test the shared store is mutated in place and returned."""
        shared = {"text": "tiny"}
        assert qa_graph.run(shared) is shared

    def test_deterministic(self, qa_graph):
        """Test identical inputs produce identical paths and stores."""
        runs = []
        for _ in range(3):
            trace = ExecutionTrace()
            shared = qa_graph.run({"text": "some longer input text here"}, trace=trace)
            runs.append((trace.visited, shared))
        assert runs[0] == runs[1] == runs[2]

    def test_node_returning_end_stops(self, recorder):
        """Test END returned by a node ends the run without a transition."""
        graph = Graph("g")
        graph.register(recorder("a", END), "a", start=True)
        graph.register(recorder("b"), "b")
        graph.add_transition("a", DEFAULT_ACTION, "b")

        trace = ExecutionTrace()
        shared = graph.run({}, trace=trace)

        assert shared["visited"] == ["a"]
        assert trace.exit_action == END

    def test_exit_action_is_last_action(self, recorder):
        """Test the exit action is the action that reached END."""
        graph = Graph("g")
        graph.register(recorder("a", "finish"), "a", start=True) - "finish" >> END

        trace = ExecutionTrace()
        graph.run({}, trace=trace)

        assert trace.exit_action == "finish"
        assert trace.status == "completed"

    def test_unresolved_transition(self, recorder):
        """Test an action without an edge fails the run with context."""
        graph = Graph("g")
        a = graph.register(recorder("a", "surprise"), "a", start=True)
        a - "expected" >> END

        with pytest.raises(UnresolvedTransitionError) as exc_info:
            graph.run({})

        error = exc_info.value
        assert error.node_id == "a"
        assert error.action == "surprise"
        assert error.available == ["expected"]
        assert error.path == ["a"]
        assert error.phase == "transition"

    def test_no_implicit_default_edge(self, recorder):
        """Test a node with no edges fails rather than ending the run."""
        graph = Graph("g")
        graph.register(recorder("a"), "a", start=True)

        with pytest.raises(UnresolvedTransitionError, match="no outgoing transitions"):
            graph.run({})

    def test_node_failure_propagates(self):
        """Test an exhausted node fails the whole run."""

        def boom(_):
            raise RuntimeError("boom")

        graph = Graph("g")
        graph.register(FunctionNode(boom, policy=RetryPolicy(max_attempts=2)), "a", start=True)

        trace = ExecutionTrace()
        with pytest.raises(FallbackError) as exc_info:
            graph.run({}, trace=trace)

        assert exc_info.value.path == ["a"]
        assert trace.status == "failed"
        assert trace.steps[0].attempts == 2
        assert trace.steps[0].error

    def test_params_reach_every_node(self):
        """Test run params and per-registration params are merged."""
        seen = []

        def capture(shared, params):
            seen.append(params.to_dict())

        graph = Graph("g")
        a = graph.register(FunctionNode(prepare=capture), "a", start=True)
        b = graph.register(FunctionNode(prepare=capture), "b", params={"model": "large"})
        a >> b >> END

        graph.run({}, {"model": "small", "user": "ann"})

        assert seen == [
            {"model": "small", "user": "ann"},
            {"model": "large", "user": "ann"},
        ]

    def test_shared_store_any_mapping(self, qa_graph):
        """Test a custom mutable mapping works as the shared store."""
        shared = UserDict({"text": "tiny"})
        qa_graph.run(shared)
        assert shared["final_output"] == "tiny"


class TestGraphBudget:
    """Tests for step budgets and cancellation."""

    def test_cycle_runs_until_stop(self):
        """Test cycles are allowed and end on their own."""
        graph = Graph("loop")
        counter = graph.register(Counter(), "count", start=True)
        counter - "again" >> counter
        counter - "stop" >> END

        shared = graph.run({"limit": 5})
        assert shared["count"] == 5

    def test_max_steps_guard(self):
        """Test an endless cycle is stopped by max_steps."""
        graph = Graph("loop", max_steps=10)
        counter = graph.register(Counter(), "count", start=True)
        counter - "again" >> counter

        with pytest.raises(BudgetExceededError, match="Step limit exceeded: 10/10"):
            graph.run({})

    def test_budget_argument(self):
        """Test an explicit budget overrides max_steps."""
        graph = Graph("loop", max_steps=100)
        counter = graph.register(Counter(), "count", start=True)
        counter - "again" >> counter

        shared = {}
        with pytest.raises(BudgetExceededError):
            graph.run(shared, budget=Budget(max_steps=3))
        assert shared["count"] == 3

    def test_max_steps_from_config(self):
        """Test the config supplies the default step guard."""
        graph = Graph("loop", config=EngineConfig(max_steps=4))
        counter = graph.register(Counter(), "count", start=True)
        counter - "again" >> counter

        assert graph.max_steps == 4
        with pytest.raises(BudgetExceededError):
            graph.run({})

    def test_max_steps_from_env(self, monkeypatch):
        """Test SYNAPTIC_MAX_STEPS applies when nothing else is set."""
        monkeypatch.setenv("SYNAPTIC_MAX_STEPS", "7")
        assert Graph("g").max_steps == 7

    def test_invalid_max_steps(self):
        """Test max_steps must be positive."""
        with pytest.raises(ValueError, match="max_steps must be >= 1"):
            Graph("g", max_steps=0)

    def test_cancelled_before_run(self, qa_graph):
        """Test a cancelled token stops the run before the first step."""
        token = CancellationToken()
        token.cancel()
        trace = ExecutionTrace()

        with pytest.raises(CancelledError):
            qa_graph.run({"text": "x"}, cancellation=token, trace=trace)

        assert trace.steps == []
        assert trace.status == "cancelled"

    def test_cancel_during_run(self):
        """Test cancellation between steps stops a cycle."""
        token = CancellationToken()
        started = threading.Event()

        class Spin(Counter):
            def execute(self, count):
                started.set()
                return count + 1

        graph = Graph("loop")
        spin = graph.register(Spin(), "spin", start=True)
        spin - "again" >> spin

        errors = []

        def run():
            try:
                graph.run({}, cancellation=token)
            except CancelledError as e:
                errors.append(e)

        worker = threading.Thread(target=run)
        worker.start()
        started.wait(timeout=2)
        token.cancel()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert len(errors) == 1


class TestGraphDefinition:
    """Tests for registration, transitions and validation."""

    def test_duplicate_node_id(self, recorder):
        """Test an id can only be registered once."""
        graph = Graph("g")
        graph.register(recorder("a"), "a")

        with pytest.raises(DuplicateNodeError, match="already registered"):
            graph.register(recorder("b"), "a")

    def test_same_node_instance_twice(self, recorder):
        """Test one node instance may be registered under two ids."""
        node = recorder("shared")
        graph = Graph("g")
        graph.register(node, "first", start=True)
        graph.register(node, "second")
        graph.add_transition("first", None, "second")
        graph.add_transition("second", None, END)

        assert graph.run({})["visited"] == ["shared", "shared"]

    def test_id_defaults_to_node_name(self):
        """Test the registration id falls back to the node's name."""
        graph = Graph("g")
        handle = graph.register(FunctionNode(name="step"))
        assert handle.node_id == "step"
        assert "step" in graph

    @pytest.mark.parametrize("bad_id", ["a/b", "-x", END])
    def test_invalid_node_id(self, bad_id):
        """Test ids with reserved characters are rejected."""
        graph = Graph("g")
        with pytest.raises(GraphDefinitionError):
            graph.register(FunctionNode(name="ok"), bad_id)

    def test_register_non_node(self):
        """Test only nodes and graphs can be registered."""
        with pytest.raises(TypeError, match="Expected a Node or Graph"):
            Graph("g").register(lambda: None, "a")  # type: ignore[arg-type]

    def test_register_self(self):
        """Test a graph cannot contain itself."""
        graph = Graph("g")
        with pytest.raises(GraphDefinitionError, match="cannot contain itself"):
            graph.register(graph, "me")

    def test_register_indirect_cycle(self):
        """Test a graph cannot contain a graph that already contains it."""
        outer = Graph("outer")
        outer.register(FunctionNode(finalize=lambda shared, params, _: END), "x", start=True)
        middle = Graph("middle")
        middle.register(outer, "inner_outer", start=True)
        top = Graph("top")
        top.register(middle, "inner_middle", start=True)

        with pytest.raises(GraphDefinitionError, match="cannot contain itself"):
            outer.register(middle, "inner_middle")
        with pytest.raises(GraphDefinitionError, match="cannot contain itself"):
            outer.register(top, "inner_top")

        assert outer.list_nodes() == ["x"]
        assert outer.validate() == []

    def test_async_node_rejected(self):
        """Test async nodes need an AsyncGraph."""
        with pytest.raises(GraphDefinitionError, match="AsyncGraph"):
            Graph("g").register(AsyncNode(), "a")

    def test_last_write_wins(self, recorder):
        """Test re-adding a transition replaces its target."""
        graph = Graph("g")
        a = graph.register(recorder("a"), "a", start=True)
        b = graph.register(recorder("b"), "b")
        c = graph.register(recorder("c"), "c")
        a >> b
        a >> c
        b >> END
        c >> END

        assert graph.run({})["visited"] == ["a", "c"]
        assert graph.transitions.get("a", DEFAULT_ACTION) == "c"

    def test_strict_duplicate_transition(self, recorder):
        """Test strict graphs reject duplicate (source, action) pairs."""
        graph = Graph("g", strict_transitions=True)
        a = graph.register(recorder("a"), "a", start=True)
        a >> END

        with pytest.raises(DuplicateTransitionError, match="already targets"):
            a >> END

    def test_strict_from_env(self, monkeypatch):
        """Test SYNAPTIC_STRICT_TRANSITIONS turns strict mode on."""
        monkeypatch.setenv("SYNAPTIC_STRICT_TRANSITIONS", "true")
        assert Graph("g").transitions.strict is True

    def test_validate_valid_graph(self, qa_graph):
        """Test a well-formed graph has no problems."""
        assert qa_graph.validate() == []

    def test_validate_problems(self, recorder):
        """Test validate lists every structural problem."""
        graph = Graph("g")
        graph.register(FunctionNode(actions=["yes", "no"], name="ask"), "ask")
        graph.add_transition("ask", "yes", "missing")
        graph.add_transition("ghost", "go", END)

        assert graph.validate() == [
            "No start node set",
            "Transition ('ask', 'yes') targets unknown node 'missing'",
            "Transition ('ghost', 'go') has unknown source",
            "Node 'ask' declares action 'no' without a transition",
        ]

    def test_unregistered_start(self):
        """Test a start id that was never registered is reported."""
        graph = Graph("g").set_start("nowhere")
        assert graph.validate() == ["Start node 'nowhere' is not registered"]

    def test_run_validates_first(self, recorder):
        """Test an invalid graph fails before any node runs."""
        graph = Graph("g")
        graph.register(recorder("a"), "a", start=True)
        graph.add_transition("a", None, "missing")

        shared = {}
        with pytest.raises(GraphDefinitionError) as exc_info:
            graph.run(shared)

        assert exc_info.value.problems == [
            "Transition ('a', 'default') targets unknown node 'missing'"
        ]
        assert shared == {}

    def test_set_start_replacement_warns(self, recorder, caplog):
        """Test replacing the start node logs a warning."""
        graph = Graph("g")
        graph.register(recorder("a"), "a", start=True)
        with caplog.at_level(logging.WARNING, logger="synaptic.run"):
            graph.register(recorder("b"), "b", start=True)

        assert graph.start == "b"
        assert "start_replaced" in caplog.text

    def test_introspection(self, qa_graph):
        """Test node listing and action queries."""
        assert qa_graph.list_nodes() == ["Summarize", "ExtractKeywords", "Output"]
        assert qa_graph.actions("Summarize") == ["long", "short"]
        assert qa_graph.actions() == ["done", "long", "short"]
        assert len(qa_graph) == 3
        assert isinstance(qa_graph.get_node("Output"), Node)

    def test_registrations(self):
        """Test registrations keep ids, nodes and per-registration params."""
        graph = Graph("g")
        node = FunctionNode(name="fetch")
        graph.register(node, "fetch", start=True, params={"retries": 2}) >> END

        [reg] = graph.registrations()

        assert reg.node_id == "fetch"
        assert reg.node is node
        assert reg.params.to_dict() == {"retries": 2}

    def test_get_node_missing(self):
        """Test get_node raises KeyError for unknown ids."""
        with pytest.raises(KeyError, match="No node 'x'"):
            Graph("g").get_node("x")

    def test_invalid_graph_id(self):
        """Test graph ids follow node id rules."""
        with pytest.raises(ValueError, match="Graph id"):
            Graph("a/b")


class TestBuilder:
    """Tests for the fluent builder operators."""

    def test_rshift_uses_default_action(self, recorder):
        """Test a >> b adds the default edge and returns b."""
        graph = Graph("g")
        a = graph.register(recorder("a"), "a")
        b = graph.register(recorder("b"), "b")

        result = a >> b

        assert isinstance(result, NodeHandle)
        assert result.node_id == "b"
        assert graph.transitions.edges() == [("a", DEFAULT_ACTION, "b")]

    def test_named_action(self, recorder):
        """Test a - "x" >> b adds an edge for action x."""
        graph = Graph("g")
        a = graph.register(recorder("a"), "a")
        b = graph.register(recorder("b"), "b")

        a - "retry" >> b >> END

        assert graph.transitions.edges() == [("a", "retry", "b"), ("b", DEFAULT_ACTION, END)]

    def test_connect_by_id(self, recorder):
        """Test string targets are accepted."""
        graph = Graph("g")
        a = graph.register(recorder("a"), "a")
        assert a.connect("next", "later") == "later"
        assert graph.transitions.get("a", "next") == "later"

    def test_cross_graph_rejected(self, recorder):
        """Test handles of two graphs cannot be connected."""
        a = Graph("one").register(recorder("a"), "a")
        b = Graph("two").register(recorder("b"), "b")

        with pytest.raises(GraphDefinitionError, match="nest the graph instead"):
            a >> b

    def test_invalid_operands(self, recorder):
        """Test non-string actions and odd targets are rejected."""
        a = Graph("g").register(recorder("a"), "a")

        with pytest.raises(TypeError):
            a - 3  # type: ignore[operator]
        with pytest.raises(TypeError):
            a >> 3  # type: ignore[operator]

    def test_handle_node(self, recorder):
        """Test a handle resolves to its node."""
        node = recorder("a")
        handle = Graph("g").register(node, "a")
        assert handle.node is node
