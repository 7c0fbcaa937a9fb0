from __future__ import annotations


class ScraperClientError(Exception):
    pass


class ConfigError(ScraperClientError):
    pass


class InvalidReferenceError(ScraperClientError, ValueError):
    pass


class NotAuthenticatedError(ScraperClientError):
    pass


class TransportError(ScraperClientError):
    def __init__(self, server_location: str, url: str, attempts: int, last_error: BaseException | None = None) -> None:
        self.server_location = server_location
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"request to {url} failed after {attempts} attempts: {last_error}")


class CapabilityError(ScraperClientError):
    def __init__(
        self,
        server_location: str,
        detail: str = "api key does not have the scraper role",
        *,
        status_code: int | None = None,
    ) -> None:
        self.server_location = server_location
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{server_location}: {detail}")


class SubmitError(ScraperClientError):
    def __init__(
        self,
        server_location: str,
        *,
        status_code: int | None = None,
        status_text: str | None = None,
        body: str | None = None,
        detail: str | None = None,
    ) -> None:
        self.server_location = server_location
        self.status_code = status_code
        self.status_text = status_text
        self.body = body
        if detail is None:
            detail = f"server responded with [{status_code}] {status_text}: {body}"
        super().__init__(f"{server_location}: {detail}")
