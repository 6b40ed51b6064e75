"""Parse results handed to the execution layer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

__all__ = ("ACTION_KEYWORD_LENGTH", "Metadata", "SQLAction", "detect_action")

ACTION_KEYWORD_LENGTH: Final = 6


class SQLAction(str, Enum):
    """Statement kind derived from the leading keyword."""

    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    OTHER = "other"

    def __str__(self) -> str:
        return self.value


_ACTIONS: Final = {a.value: a for a in SQLAction if a is not SQLAction.OTHER}


def detect_action(sql: str) -> SQLAction:
    """Detect the statement action from its first six characters.

    The statement is trimmed and the leading keyword lowercased. Statements
    that are shorter than the keyword or start with anything else (``WITH``,
    comments, ``REPLACE``) are reported as :attr:`SQLAction.OTHER`; no attempt
    is made to look past them.

    Args:
        sql: Statement text.

    Returns:
        The detected action.
    """
    keyword = sql.strip()[:ACTION_KEYWORD_LENGTH].lower()
    return _ACTIONS.get(keyword, SQLAction.OTHER)


@dataclass(frozen=True)
class Metadata:
    """Prepared statement produced by a parser.

    ``prepared_sql`` holds exactly ``len(params)`` driver placeholders, in the
    same order as ``params``.
    """

    action: SQLAction
    prepared_sql: str
    vars: "tuple[str, ...]" = field(default_factory=tuple)
    """Placeholder names in the order they were encountered."""
    params: "tuple[Any, ...]" = field(default_factory=tuple)
    """Bound values in placeholder order."""

    def __str__(self) -> str:
        return (
            f"action: {self.action}, prepareSql: {self.prepared_sql}, "
            f"vars: {list(self.vars)}, params: {list(self.params)}"
        )
