"""
Exception taxonomy
Typed errors raised by services and translated to HTTP responses by the API layer
"""

from typing import Any, Dict, List, Optional, Sequence


class UniGuideError(Exception):
    """Base class for all application errors"""


class ConfigurationError(UniGuideError):
    """Raised when an environment variable holds an invalid value"""


class EntityNotFoundError(UniGuideError):
    """Raised when a requested record does not exist for the caller"""


class IllegalArgumentError(UniGuideError):
    """Raised when an operation's preconditions are not met"""


class InvalidStateTransitionError(UniGuideError):
    """Raised when a status change would move a record backwards"""


class InputValidationError(UniGuideError):
    """
    Raised when a locally built prediction input fails validation

    Attributes:
        issues: List of {"field": ..., "message": ...} dictionaries
    """

    def __init__(self, issues: List[Dict[str, str]], message: str = "Invalid prediction input"):
        self.issues = issues
        details = "; ".join(f"{issue['field']} - {issue['message']}" for issue in issues)
        super().__init__(f"{message}: {details}" if details else message)


class PredictionServiceError(UniGuideError):
    """
    Failure while talking to the remote prediction service

    Attributes:
        retryable: Whether the batch invoker may retry the failed call
    """

    retryable = True


class PredictionApiError(PredictionServiceError):
    """Non-validation HTTP error returned by the prediction service"""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.retryable = status_code is None or status_code >= 500 or status_code == 429
        super().__init__(f"Prediction API error ({status_code}): {message}")


class PredictionValidationError(PredictionServiceError):
    """HTTP 422 from the prediction service; retrying cannot fix the input"""

    retryable = False

    def __init__(self, detail: Sequence[Dict[str, Any]]):
        self.detail = list(detail)
        issues = "; ".join(
            f"{'.'.join(str(part) for part in item.get('loc', []))} - {item.get('msg', '')}"
            for item in self.detail
        )
        super().__init__(f"Prediction API validation error: {issues}")


class PredictionTimeoutError(PredictionServiceError):
    """The prediction service did not answer within the configured timeout"""


class PredictionResponseError(PredictionServiceError):
    """The prediction service answered with a body we cannot interpret"""

    retryable = False


class PredictionRequestError(PredictionServiceError):
    """A chunk request could not be built or handled locally"""

    retryable = False
