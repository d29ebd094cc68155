"""Planning chat errors."""


class PlanningChatError(Exception):
    """Base class for planning chat failures."""


class SendInProgressError(PlanningChatError):
    """A message is already streaming on this controller."""

    def __init__(self) -> None:
        super().__init__("A planning message is already streaming")


class PlanningRequestError(PlanningChatError):
    """The chat request failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class SessionExpiredError(PlanningRequestError):
    """The backend no longer knows the session id (HTTP 404).

    Recoverable: the next send starts a fresh backend session.
    """

    def __init__(self, detail: str | None = None):
        super().__init__(
            "Planning session expired, send again to start a new one",
            status_code=404,
            detail=detail,
        )


class ApprovalError(PlanningChatError):
    """Approving a recommendation failed."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
