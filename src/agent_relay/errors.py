"""Error taxonomy surfaced to callers of the session core.

Each error carries a stable ``kind`` so the HTTP layer can map it to a
problem+json response without inspecting message text.
"""


class AgentRelayError(Exception):
    kind = "InternalError"


class InvalidQueryError(AgentRelayError, ValueError):
    kind = "InvalidQuery"


class AgentBusyError(AgentRelayError):
    kind = "Busy"

    def __init__(self, message: str = "Agent is busy") -> None:
        super().__init__(message)


class NoActiveQuestionError(AgentRelayError):
    kind = "NoActiveQuestion"

    def __init__(self, message: str = "There is no active question to answer") -> None:
        super().__init__(message)


class NoActivePlanError(AgentRelayError):
    kind = "NoActivePlan"

    def __init__(self, message: str = "There is no active plan to approve") -> None:
        super().__init__(message)


class InternalAgentError(AgentRelayError):
    kind = "InternalError"
