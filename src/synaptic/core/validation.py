"""Identifier validation for graph nodes.

Provides consistent validation rules for the ids nodes are registered under.
"""

from __future__ import annotations

import re

from synaptic.core.nodes.actions import END

# Letters, digits, underscore, dash and dot; must not start with dash or dot.
# "/" is reserved as the separator of nested node paths.
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")

MAX_IDENTIFIER_LENGTH = 64


def validate_identifier(identifier: str, entity: str = "node") -> None:
    """Validate a node (or graph) identifier.

    Rules:
    - 1-64 characters
    - Letters, digits, underscore, dash and dot only
    - Cannot start with dash or dot
    - Cannot be the reserved END sentinel

    Args:
        identifier: The identifier to validate.
        entity: What the identifier is for (used in error messages).

    Raises:
        ValueError: If the identifier is invalid.

    Example:
        >>> validate_identifier("Summarize")       # OK
        >>> validate_identifier("extract-keywords") # OK
        >>> validate_identifier("a/b")             # ValueError
        >>> validate_identifier("-bad")            # ValueError
    """
    entity_cap = entity.capitalize()

    if not isinstance(identifier, str) or not identifier:
        raise ValueError(f"{entity_cap} id is required")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(f"{entity_cap} id must be {MAX_IDENTIFIER_LENGTH} characters or less")

    if identifier == END:
        raise ValueError(f"{entity_cap} id {END!r} is reserved")

    if not IDENTIFIER_PATTERN.match(identifier):
        raise ValueError(
            f"{entity_cap} id {identifier!r} must contain only letters, digits, "
            f"'_', '-' or '.', and cannot start with '-' or '.'"
        )


def is_valid_identifier(identifier: str) -> bool:
    """Check if an identifier is valid without raising.

    Args:
        identifier: The identifier to check.

    Returns:
        True if valid, False otherwise.
    """
    try:
        validate_identifier(identifier)
    except ValueError:
        return False
    return True
