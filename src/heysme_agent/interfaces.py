"""Abstract interfaces for the orchestrator's external collaborators.

These ABCs define the contract that storage backends and model providers
must fulfil.  The SDK ships an in-memory and a SQL store (``stores.py``)
and an Ollama-compatible HTTP gateway (``gateway.py``).

Typical integration flow::

    store: SessionStore = InMemorySessionStore()
    gateway: ModelGateway = OllamaGateway(base_url, model)
    orchestrator = Orchestrator.build(store, gateway)

    session_id = await orchestrator.create_session()
    async for event in orchestrator.stream_stage(session_id, "hello"):
        ...
"""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable

from heysme_db.models.enums import Stage

from heysme_agent.models.gateway import ChatMessage, GenerationResult
from heysme_agent.models.session import Session

# Mutator applied inside SessionStore.transition.  Receives a private copy
# of the session and edits it in place; raising aborts the transition.
SessionMutator = Callable[[Session], None]


class SessionStore(ABC):
    """Keyed storage of session state with compare-and-swap transitions.

    Every mutation of a stored session goes through :meth:`transition`;
    there is no blind ``put``.
    """

    @abstractmethod
    async def create(self, seed: dict[str, Any] | None = None) -> Session:
        """Allocate a new session in the initial stage.

        Parameters
        ----------
        seed:
            Optional initial ``collectedData``.

        Returns
        -------
        Session
            The stored session.  Storage I/O errors propagate.
        """
        ...

    @abstractmethod
    async def get(self, session_id: str) -> Session:
        """Return a copy of the stored session.

        Raises
        ------
        SessionNotFound
            If ``session_id`` does not exist.
        """
        ...

    @abstractmethod
    async def transition(
        self,
        session_id: str,
        expected_stage: Stage,
        mutator: SessionMutator,
    ) -> Session:
        """Atomically apply ``mutator`` if the session sits in ``expected_stage``.

        The mutator edits a copy; the copy replaces the stored session only
        if the mutator returns normally.  ``updatedAt`` is refreshed on
        every successful transition.

        Returns
        -------
        Session
            The session as stored after the mutation.

        Raises
        ------
        SessionNotFound
            If ``session_id`` does not exist.
        StageConflict
            If the stored stage differs from ``expected_stage``; nothing is
            written.
        """
        ...

    @abstractmethod
    async def list_sessions(self, *, limit: int = 50, offset: int = 0) -> list[Session]:
        """Sessions ordered by most recently updated first."""
        ...


class ModelGateway(ABC):
    """Interface to a text/structured-generation model provider.

    Implementations raise :class:`~heysme_agent.errors.ProviderError` for
    failures that may succeed on retry and
    :class:`~heysme_agent.errors.InvalidRequestError` for malformed
    requests.  Timeouts and retries are applied by the caller
    (:class:`~heysme_agent.gateway.GatewayCaller`), not here.
    """

    @abstractmethod
    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        schema: dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        """Produce a complete reply.

        Parameters
        ----------
        messages:
            Ordered chat history, system prompt first.
        schema:
            Optional JSON schema the reply must satisfy.  When given,
            ``GenerationResult.data`` holds the parsed object.
        max_tokens:
            Optional output cap.
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Produce a reply as a sequence of text increments.

        Implemented as an async generator.  Closing the iterator early must
        release the underlying connection.
        """
        ...
