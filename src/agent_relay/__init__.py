from agent_relay.broadcaster import Broadcaster
from agent_relay.ledger import MessageLedger, PageResult
from agent_relay.messages import Message
from agent_relay.pagination import PaginationQuery, parse_pagination_params
from agent_relay.run_state import RunStateMachine
from agent_relay.session_context import SessionContext

__all__ = [
    "Broadcaster",
    "Message",
    "MessageLedger",
    "PageResult",
    "PaginationQuery",
    "RunStateMachine",
    "SessionContext",
    "parse_pagination_params",
]
