"""
Exception types shared by the verification pipeline and its channel adapters.
"""


class TathyaSetuError(Exception):
    """Base class for every error raised by the verification pipeline."""


class EmptyInputError(TathyaSetuError):
    """The user submitted no usable content."""

    def __init__(self, message: str = "Please enter text, a URL, or upload media to analyze."):
        super().__init__(message)


class UnsupportedMediaError(TathyaSetuError):
    """Uploaded media is outside the accepted types or above the size ceiling."""

    def __init__(self, message: str, too_large: bool = False):
        super().__init__(message)
        self.too_large = too_large


class UpstreamError(TathyaSetuError):
    """Contacting the external model failed."""

    def __init__(self, message: str = "Failed to analyze content. Please try again."):
        super().__init__(message)


class QuotaExceededError(UpstreamError):
    """The model service reported rate-limit or quota exhaustion."""

    def __init__(self, message: str = "The model service quota is exhausted. Please try again later."):
        super().__init__(message)


class MalformedResponseError(TathyaSetuError):
    """Model output could not be parsed. Only raised and handled inside the normalizer."""


class ConfigurationError(TathyaSetuError):
    """A required credential is missing."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(f"Missing required configuration: {', '.join(self.missing)}")


class StaleResponseError(TathyaSetuError):
    """A newer request was issued while this one was in flight."""

    def __init__(self, token: int, latest: int):
        super().__init__(f"Request {token} was superseded by request {latest}.")
        self.token = token
        self.latest = latest
