"""Domain exceptions -- catch specific, re-raise with context."""


class PetFeedbackError(Exception):
    """Root for all domain errors."""


# --- remote call failures ---

class LLMClientError(PetFeedbackError):
    """Wraps provider-specific LLM failures."""

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(f"[{provider}] {detail}")
        self.provider = provider
        self.detail = detail


class LLMTimeoutError(LLMClientError):
    """The call used up its whole latency budget."""

    def __init__(self, provider: str, timeout_ms: int) -> None:
        super().__init__(provider, f"timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class LLMHTTPStatusError(LLMClientError):
    """Backend answered with a non-2xx status."""

    def __init__(self, provider: str, status_code: int, body: str = "") -> None:
        detail = f"HTTP {status_code} - {body}" if body else f"HTTP {status_code}"
        super().__init__(provider, detail)
        self.status_code = status_code
        self.body = body


class LLMConnectionError(LLMClientError):
    """Connection refused, DNS failure or a dropped socket."""


class LLMResponseFormatError(LLMClientError):
    """Body or model output could not be turned into the expected shape."""


class RetriesExhaustedError(LLMClientError):
    def __init__(self, provider: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(provider, f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


# --- configuration failures ---

class ProviderConfigError(PetFeedbackError):
    """Provider settings are incomplete (missing key, url, ...)."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"Invalid configuration for provider '{provider}': {reason}")
        self.provider = provider
        self.reason = reason


class ProviderNotImplementedError(PetFeedbackError):
    def __init__(self, provider: str) -> None:
        super().__init__(f"LLM provider '{provider}' is not yet implemented")
        self.provider = provider


class UnknownProviderError(PetFeedbackError):
    def __init__(self, provider: object) -> None:
        super().__init__(f"Unknown LLM provider: {provider!r}")
        self.provider = provider


class NoProviderAvailableError(PetFeedbackError):
    """Selector found nothing usable -- callers fall back to the default analysis."""

    def __init__(self, preferred: str) -> None:
        super().__init__(
            f"No LLM provider available for preference '{preferred}'. "
            "Either enable a local backend or provide a Groq API key."
        )
        self.preferred = preferred
