"""Lookups of channels and categories on the third-party platform API."""

from typing import Optional, Union

import requests

from .logger import StructuredLogger, get_logger
from .parser import FieldKind
from .retry import (
    CircuitBreaker,
    CircuitOpenError,
    RetryError,
    exponential_backoff,
    should_retry_http_status,
)
from .schema import ApiReference, to_api_reference

DEFAULT_TIMEOUT = 15.0


class InvalidInputError(ValueError):
    """Raised before any request when the identifier is unusable."""


class ResolveError(Exception):
    """Raised when the platform could not be reached or answered with an error."""


class PlatformUnavailableError(ResolveError):
    """Raised when the platform itself is unreachable or keeps failing; counted by the circuit breaker."""


class TransientStatusError(requests.exceptions.HTTPError):
    """Retryable HTTP status (429, 5xx, ...) raised to trigger a backoff retry."""


class ApiResolver:
    """
    Resolve reference identifiers to their current platform name.

    One resolver is meant to serve a whole sync run: it keeps a single
    ``requests.Session`` and a circuit breaker shared by every lookup.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        base_delay: float = 1.0,
        breaker: Optional[CircuitBreaker] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.session = session or requests.Session()
        self._owns_session = session is None
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60,
            expected_exception=PlatformUnavailableError,
        )
        self.logger = logger or get_logger()
        self._get = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                TransientStatusError,
            ),
            on_retry=self._on_retry,
        )(self._get_once)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self):
        if self._owns_session:
            self.session.close()

    def build_url(self, identifier: str, field_kind: Union[FieldKind, str]) -> str:
        return f"{self.base_url}/api/{FieldKind(field_kind).value}/{identifier}"

    def resolve(
        self, identifier: str, field_kind: Union[FieldKind, str]
    ) -> Optional[ApiReference]:
        """
        Fetch the canonical name and id for ``identifier``.

        Returns:
            ApiReference, or None when the platform no longer knows the id

        Raises:
            InvalidInputError: empty identifier
            PlatformUnavailableError: network failure or retryable status that
                outlasted the retries, or an open circuit
            ResolveError: any other HTTP error status or a body that is not JSON
        """
        if not identifier:
            raise InvalidInputError("Invalid UUID provided.")
        url = self.build_url(identifier, field_kind)
        try:
            return self.breaker.call(self._fetch, url)
        except CircuitOpenError as e:
            raise PlatformUnavailableError(f"Platform unavailable: {e}") from e

    def _fetch(self, url: str) -> Optional[ApiReference]:
        try:
            resp = self._get(url)
        except RetryError as e:
            cause = e.__cause__
            if isinstance(cause, TransientStatusError):
                status = cause.response.status_code if cause.response is not None else "HTTPError"
                raise PlatformUnavailableError(f"Platform request failed ({status}): {url}") from e
            if isinstance(cause, requests.exceptions.Timeout):
                raise PlatformUnavailableError(f"Platform request timed out: {url}") from e
            raise PlatformUnavailableError(f"Platform request error: {cause}") from e
        except requests.exceptions.RequestException as e:
            raise PlatformUnavailableError(f"Platform request error: {e}") from e

        if not resp.ok:
            raise ResolveError(f"Platform request failed ({resp.status_code}): {url}")
        if resp.status_code == 204 or not resp.content or not resp.content.strip():
            return None

        try:
            data = resp.json()
        except ValueError as e:
            raise ResolveError(f"Platform returned a non-JSON body: {url}") from e

        reference = to_api_reference(data)
        if reference is None:
            self.logger.debug("Reference not found on platform", url=url)
        return reference

    def _get_once(self, url: str) -> requests.Response:
        self.logger.record_api_call()
        resp = self.session.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        if should_retry_http_status(resp.status_code):
            raise TransientStatusError(
                f"Retryable status {resp.status_code}: {url}", response=resp
            )
        return resp

    def _on_retry(self, attempt: int, error: Exception, delay: float):
        self.logger.warning(
            "Platform request failed, retrying",
            attempt=attempt,
            delay=delay,
            error=str(error),
        )


def resolve(
    base_url: str,
    identifier: str,
    field_kind: Union[FieldKind, str],
    session: Optional[requests.Session] = None,
) -> Optional[ApiReference]:
    """One-off lookup; see ApiResolver.resolve."""
    with ApiResolver(base_url, session=session) as resolver:
        return resolver.resolve(identifier, field_kind)
