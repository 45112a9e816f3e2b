"""Error taxonomy for the orchestrator.

Every class carries a stable ``code`` that survives serialisation (stream
``error`` events, HTTP error bodies, outcome models) and a
``client_message`` that is safe to show to an end user.  The raw exception
message may contain session ids or provider details and is only logged.

Gateway implementations raise :class:`ProviderError` /
:class:`InvalidRequestError`; the retry wrapper in ``gateway.py`` turns
them into :class:`ProviderTransient` / :class:`ProviderFatal`.
"""


class OrchestratorError(Exception):
    """Base class for all orchestration failures."""

    code: str = "internal_error"
    client_message: str = "Something went wrong, please retry later."
    retryable: bool = False


class SessionNotFound(OrchestratorError):
    """The session id does not exist."""

    code = "not_found"
    client_message = "Session not found."


class StageConflict(OrchestratorError):
    """A compare-and-swap transition lost the race to a concurrent call."""

    code = "conflict"
    client_message = "The session was updated concurrently."


class InvalidTarget(OrchestratorError):
    """A reset, advance or interaction names something outside the rules."""

    code = "invalid_target"
    client_message = "The requested stage change is not allowed."


class NoPendingInteraction(OrchestratorError):
    """An interaction was submitted but no matching prompt is open."""

    code = "no_pending_interaction"
    client_message = "There is no open question to answer."


class InteractionPending(OrchestratorError):
    """A stage was auto-started while a prompt still awaits an answer."""

    code = "interaction_pending"
    client_message = "Please answer the open question first."


class ProviderTransient(OrchestratorError):
    """Model call timed out or failed transiently; safe to retry."""

    code = "provider_transient"
    client_message = "The assistant is temporarily unavailable, please retry."
    retryable = True


class ProviderFatal(OrchestratorError):
    """Model call was rejected as malformed; retrying will not help."""

    code = "provider_fatal"
    client_message = "The request could not be processed."


# ------------------------------------------------------------------
# Gateway-level errors (raised by ModelGateway implementations)
# ------------------------------------------------------------------

class ProviderError(Exception):
    """Failure reported by a model provider.

    Args:
        message: human-readable description (logged, never shown to users)
        retryable: whether repeating the same call may succeed
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class InvalidRequestError(ProviderError):
    """The provider rejected the request itself (bad schema, bad model)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=False)


_ERRORS_BY_CODE: dict[str, type[OrchestratorError]] = {
    cls.code: cls
    for cls in (
        OrchestratorError,
        SessionNotFound,
        StageConflict,
        InvalidTarget,
        NoPendingInteraction,
        InteractionPending,
        ProviderTransient,
        ProviderFatal,
    )
}


def error_from_code(code: str, detail: str | None = None) -> OrchestratorError:
    """Rebuild an exception from its stable code (used by the HTTP layer)."""
    cls = _ERRORS_BY_CODE.get(code, OrchestratorError)
    return cls(detail or code)
