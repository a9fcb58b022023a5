from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from agent_relay.errors import InvalidQueryError

DIRECTION_HEAD = "head"
DIRECTION_TAIL = "tail"
DEFAULT_AROUND_CONTEXT = 10

MODE_ALL = "all"
MODE_HEAD_TAIL = "head_tail"
MODE_AROUND = "around"
MODE_CURSOR = "cursor"


@dataclass(frozen=True)
class PaginationQuery:
    limit: int | None = None
    direction: str | None = None
    around: int | None = None
    context: int | None = None
    after: int | None = None
    before: int | None = None

    @property
    def mode(self) -> str:
        if self.after is not None or self.before is not None:
            return MODE_CURSOR
        if self.around is not None:
            return MODE_AROUND
        if self.limit is not None:
            return MODE_HEAD_TAIL
        return MODE_ALL

    def validate(self) -> None:
        """Reject malformed values and parameters drawn from more than one mode."""
        if self.limit is not None and self.limit < 1:
            raise InvalidQueryError('Parameter "limit" must be a positive integer')
        if self.context is not None and self.context < 0:
            raise InvalidQueryError('Parameter "context" must be a non-negative integer')
        if self.direction is not None and self.direction not in (DIRECTION_HEAD, DIRECTION_TAIL):
            raise InvalidQueryError('Parameter "direction" must be "head" or "tail"')

        cursor = self.after is not None or self.before is not None
        if self.after is not None and self.before is not None:
            raise InvalidQueryError('Parameters "after" and "before" cannot be used together')
        if cursor and (self.around is not None or self.context is not None):
            raise InvalidQueryError('Parameters "after"/"before" cannot be used with "around"/"context"')
        if cursor and self.direction is not None:
            raise InvalidQueryError('Parameters "after"/"before" cannot be used with "direction"')
        if self.context is not None and self.around is None:
            raise InvalidQueryError('Parameter "context" requires "around" to be specified')
        if self.around is not None and (self.limit is not None or self.direction is not None):
            raise InvalidQueryError('Parameter "around" cannot be used with "limit" or "direction"')
        if self.direction is not None and self.limit is None:
            raise InvalidQueryError('Parameter "direction" requires "limit" to be specified')


_INT_PARAMS = ("limit", "around", "context", "after", "before")


def _parse_int(name: str, raw: object) -> int:
    if isinstance(raw, bool):
        raise InvalidQueryError(f'Parameter "{name}" must be an integer')
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        try:
            value = int(text)
        except ValueError:
            raise InvalidQueryError(f'Parameter "{name}" must be an integer, got {text!r}') from None
    if value < 0:
        raise InvalidQueryError(f'Parameter "{name}" must not be negative')
    return value


def parse_pagination_params(params: Mapping[str, object]) -> PaginationQuery:
    """Build a validated query from raw query-string values.

    Unknown keys are ignored; empty values count as absent.
    """
    values: dict[str, object] = {}
    for name in _INT_PARAMS:
        raw = params.get(name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        values[name] = _parse_int(name, raw)

    direction = params.get("direction")
    if direction is not None and str(direction).strip():
        values["direction"] = str(direction).strip().lower()

    query = PaginationQuery(**values)
    query.validate()
    return query
