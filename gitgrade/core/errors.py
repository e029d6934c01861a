"""Domain errors. Routes translate these into HTTP responses; the worker decides retry vs. fail."""


class GitGradeError(Exception):
    pass


class AnalysisNotFoundError(GitGradeError):
    pass


class GitHubError(GitGradeError):
    """Fatal error while fetching the core profile."""

    status_code: int | None = None

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class GitHubNotFoundError(GitHubError):
    status_code = 404


class ProfileNotFoundError(GitHubNotFoundError):
    pass


class GitHubRateLimitError(GitHubError):
    status_code = 429


class GitHubTransportError(GitHubError):
    pass


class AIAnalysisError(GitGradeError):
    pass


class AITransportError(AIAnalysisError):
    pass


class AIResponseParseError(AIAnalysisError):
    pass


class AIResponseValidationError(AIResponseParseError):
    """JSON decoded fine but a required top-level field is missing."""


class PaymentError(GitGradeError):
    pass


class AlreadyPaidError(PaymentError):
    pass


class AnalysisNotCompletedError(PaymentError):
    pass


class PaymentProviderError(PaymentError):
    """Paddle API unreachable or returned an error."""


class WebhookSignatureError(GitGradeError):
    pass


class InvalidTransitionError(GitGradeError):
    pass


class AttemptTimeoutError(GitGradeError):
    pass
