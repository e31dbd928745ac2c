"""Exception types raised by the survey engine.

The SDK raises ``ValueError`` subclasses for caller mistakes so that
integrators can keep a single ``except ValueError`` around engine calls,
the same way the rest of the SDK reports bad input:

  - SchemaError:     malformed questionnaire definition, fatal at load time
  - NavigationError: illegal state transition (double submit, edit after
                     submission, answer for a hidden or unknown question)

Validation errors are *not* exceptions: they are per-question messages
kept in ``ResponseState.errors``.

``SubmissionError`` is raised by persistence backends when a submission
fails.  The engine converts it into a retryable ``SubmissionFailedStep``.
"""


class SchemaError(ValueError):
    """A questionnaire definition failed structural validation."""


class NavigationError(ValueError):
    """An engine operation is not valid in the session's current state."""


class SubmissionError(RuntimeError):
    """The persistence collaborator rejected or failed a submission.

    ``retryable`` tells the UI whether offering "submit again" makes sense.
    """

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable
