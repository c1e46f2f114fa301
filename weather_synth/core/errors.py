"""Error types raised by providers, the orchestrator and the service façade."""


class WeatherServiceError(Exception):
    """Weather service error."""

    pass


class InvalidCoordinates(WeatherServiceError):
    """Latitude/longitude missing, malformed or out of range."""

    pass


class ProviderError(WeatherServiceError):
    """A single upstream provider could not produce a record."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class UpstreamUnavailable(ProviderError):
    """Provider requires a credential that is not configured."""

    def __init__(self, provider: str, message: str | None = None):
        super().__init__(provider, message or f"{provider} API key not configured")


class UpstreamHttpError(ProviderError):
    """Provider answered with a non-success status or could not be reached."""

    def __init__(self, provider: str, status: int | None, message: str | None = None):
        super().__init__(provider, message or f"{provider} API error: {status}")
        self.status = status


class UpstreamTimeout(UpstreamHttpError):
    """Provider did not answer within the configured timeout."""

    def __init__(self, provider: str, timeout: float | None = None):
        detail = f" after {timeout:g}s" if timeout is not None else ""
        super().__init__(provider, 504, f"{provider} request timed out{detail}")


class UpstreamParseError(ProviderError):
    """Provider payload could not be mapped to a weather record."""

    def __init__(self, provider: str, message: str, status: int | None = None):
        super().__init__(provider, message)
        self.status = status


class UnknownProvider(WeatherServiceError):
    """Provider name is not registered."""

    def __init__(self, name: str, known: list[str] | None = None):
        available = f". Available providers: {', '.join(known)}" if known else ""
        super().__init__(f"Weather provider '{name}' not found{available}")
        self.name = name


class AllProvidersExhausted(WeatherServiceError):
    """Both the primary and the fallback provider failed."""

    def __init__(self, primary_error: Exception, fallback_error: Exception):
        super().__init__(
            f"All weather providers failed (primary: {primary_error}; fallback: {fallback_error})"
        )
        self.primary_error = primary_error
        self.fallback_error = fallback_error

    @property
    def is_configuration_error(self) -> bool:
        """True when every attempt failed only because credentials were missing."""
        return all(
            isinstance(error, UpstreamUnavailable)
            for error in (self.primary_error, self.fallback_error)
        )
