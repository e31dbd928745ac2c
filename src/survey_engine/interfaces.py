"""Abstract interfaces for the collaborators around the engine.

These ABCs define the contract that external implementations must fulfil.
The SDK ships no concrete implementations: storage and statistics live in
the host application.

Typical integration flow::

    engine = QuestionnaireEngine(registry, MyFirestoreBackend(), MyStatsSink())
    state = engine.start("train-service-survey")
    # ... engine.set_answer(...) as the respondent types ...
    step = await engine.advance(state, user_agent=request_ua)
    # step.type == "submitted" once the backend accepted the payload
"""

from abc import ABC, abstractmethod
from typing import Any

from survey_engine.models.submission import SubmissionMetadata


class PersistenceBackend(ABC):
    """Stores a completed response.

    Implementations may raise any exception.  Raising
    :class:`~survey_engine.errors.SubmissionError` with ``retryable=False``
    tells the caller that submitting again will not help; every other
    failure is reported as retryable.
    """

    @abstractmethod
    async def submit(self, payload: dict[str, Any], metadata: SubmissionMetadata) -> str:
        """Persist one canonical payload.

        Parameters
        ----------
        payload:
            ``{qid: normalised answer}`` in schema order.
        metadata:
            Session facts (timing, completion, device) computed at submit.

        Returns
        -------
        str
            The submission id assigned by the storage layer.
        """
        ...


class StatisticsSink(ABC):
    """Receives each successful submission for aggregate statistics.

    Called after the persistence backend has accepted the payload.  Errors
    raised here are logged and never undo the submission.
    """

    @abstractmethod
    async def record(self, payload: dict[str, Any], metadata: SubmissionMetadata) -> None:
        ...
