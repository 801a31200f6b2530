"""DecisionNode - agent-style routing.

An ordinary node whose execute asks a decision collaborator (an LLM call, a
classifier, a human) for a decision and whose finalize maps that decision to
one of a fixed set of actions. Decisions that match no known action map to
an explicit default action, so a stray string never reaches transition
lookup as a confusing unresolved-transition failure far from its cause.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, ClassVar

from synaptic.core.nodes.actions import DEFAULT_ACTION
from synaptic.core.nodes.base import Node
from synaptic.core.nodes.policies import RetryPolicy
from synaptic.core.nodes.run_logging import log_warning
from synaptic.core.nodes.run_logging import logger as run_logger
from synaptic.core.nodes.store import Params, SharedStore


def _decision_key(value: Any) -> str:
    return str(value).strip().lower()


class DecisionNode(Node):
    """Node that routes on an external decision.

    Matching is case-insensitive and ignores surrounding whitespace. The
    node declares every action it can emit, so Graph.validate() reports
    choices without a transition before the graph runs.

    Args:
        choices: Known actions, or a mapping of decision -> action.
        decide: Callable receiving the local input and returning the
            decision. Omit it to override execute instead.
        default_action: Action for decisions that match no choice.
        decision_key: Shared key to store the raw decision under.
        prepare: Callable receiving (shared, params) and returning the
            decision input. Defaults to a copy of the shared store.
        policy: Retry policy for the decision call.
        name: Display name.

    Example:
        >>> route = DecisionNode(
        ...     ["search", "answer"],
        ...     decide=lambda ctx: call_llm(f"search or answer? {ctx['question']}"),
        ...     default_action="answer",
        ...     decision_key="decision",
        ... )
    """

    node_type: ClassVar[str] = "decision"

    def __init__(
        self,
        choices: Iterable[str] | Mapping[str, str],
        *,
        decide: Callable[[Any], Any] | None = None,
        default_action: str = DEFAULT_ACTION,
        decision_key: str | None = None,
        prepare: Callable[[SharedStore, Params], Any] | None = None,
        policy: RetryPolicy | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(policy, name=name)
        if isinstance(choices, Mapping):
            pairs = list(choices.items())
        else:
            pairs = [(choice, choice) for choice in choices]
        if not pairs:
            raise ValueError("DecisionNode needs at least one choice")
        for _, action in pairs:
            if not isinstance(action, str) or not action:
                raise ValueError(f"Choice actions must be non-empty strings, got {action!r}")
        if not isinstance(default_action, str) or not default_action:
            raise ValueError("default_action must be a non-empty string")

        self._choices = {_decision_key(decision): action for decision, action in pairs}
        self._decide = decide
        self._prepare_fn = prepare
        self.default_action = default_action
        self.decision_key = decision_key
        self.actions = tuple(dict.fromkeys([action for _, action in pairs] + [default_action]))

    @property
    def choices(self) -> dict[str, str]:
        """Normalized decision -> action mapping."""
        return dict(self._choices)

    def prepare(self, shared: SharedStore, params: Params) -> Any:
        if self._prepare_fn is not None:
            return self._prepare_fn(shared, params)
        return dict(shared)

    def execute(self, local_input: Any) -> Any:
        if self._decide is None:
            raise NotImplementedError(
                f"{type(self).__name__} needs a decide callable or an execute override"
            )
        return self._decide(local_input)

    def finalize(self, shared: SharedStore, params: Params, result: Any) -> str:
        if self.decision_key:
            shared[self.decision_key] = result
        action, matched = self.resolve(result)
        if not matched:
            log_warning(
                run_logger,
                self.name,
                "decision_default",
                decision=result,
                default=self.default_action,
            )
        return action

    def resolve(self, decision: Any) -> tuple[str, bool]:
        """Map a decision to an action.

        Returns:
            Tuple of (action, matched). matched is False when the default
            action was applied.
        """
        if decision is None:
            return self.default_action, False
        action = self._choices.get(_decision_key(decision))
        if action is None:
            return self.default_action, False
        return action, True
