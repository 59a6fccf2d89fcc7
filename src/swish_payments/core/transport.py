"""
Mutual-TLS HTTP transport with retries and typed errors.

Every call to :meth:`TransportClient.send` runs its attempts sequentially on
the calling thread. The :class:`requests.Session` connection pool is the only
state shared between concurrent callers.
"""

from __future__ import annotations

import logging
import ssl
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import requests
from requests.adapters import HTTPAdapter

from .config import ClientConfig, ConfigError
from .errors import ErrorKind, ErrorMapper, SwishError, parse_error_records
from .payloads import canonical_json
from .response import ResponseEnvelope
from .retry import RetryPolicy, RetryState

__all__ = [
    "ALLOWED_METHODS",
    "MutualTLSAdapter",
    "RequestOptions",
    "TransportClient",
    "build_session",
    "build_ssl_context",
]

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset({"GET", "PUT", "POST", "PATCH", "DELETE"})


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-call request options.

    ``body`` is serialized as JSON unless it is already ``bytes`` or ``str``.
    ``deadline`` is in seconds from the start of the call. Setting
    ``cancel_event`` aborts pending backoff waits and further attempts.
    """

    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    deadline: Optional[float] = None
    cancel_event: Optional[threading.Event] = None

    @classmethod
    def coerce(cls, options: Union["RequestOptions", Mapping[str, Any], None]) -> "RequestOptions":
        if options is None:
            return cls()
        if isinstance(options, RequestOptions):
            return options
        unknown = set(options) - {"json", "body", "headers", "deadline", "cancel_event"}
        if unknown:
            raise TypeError(f"Unknown request options: {', '.join(sorted(unknown))}")
        return cls(
            body=options.get("json", options.get("body")),
            headers=dict(options.get("headers") or {}),
            deadline=options.get("deadline"),
            cancel_event=options.get("cancel_event"),
        )


def build_ssl_context(config: ClientConfig) -> ssl.SSLContext:
    """
    Build the client-side TLS context.

    Peer verification and hostname checks are always on. A configured CA
    bundle replaces the system trust store.
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cafile=config.ca_path)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    try:
        context.load_cert_chain(
            certfile=config.cert_path,
            keyfile=config.key_path,
            password=config.passphrase,
        )
    except (ssl.SSLError, OSError):
        raise ConfigError(
            "Unable to load the client certificate and key. "
            "Verify the file paths, formats and passphrase."
        ) from None
    return context


class MutualTLSAdapter(HTTPAdapter):
    """HTTPAdapter whose pools use a preconfigured :class:`ssl.SSLContext`."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs: Any) -> None:
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any):
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


def build_session(config: ClientConfig) -> requests.Session:
    session = requests.Session()
    session.mount("https://", MutualTLSAdapter(build_ssl_context(config)))
    session.verify = config.ca_path or True
    session.headers.update({"Accept": "application/json"})
    return session


def _encode_body(body: Any) -> Optional[bytes]:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return canonical_json(body).encode("utf-8")


class TransportClient:
    """
    Send requests to the Swish API and return the first successful response.

    Terminal failures raise :class:`~swish_payments.core.errors.SwishError`.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        error_mapper: Optional[ErrorMapper] = None,
    ) -> None:
        self.config = config
        self.session = session or build_session(config)
        self.retry_policy = retry_policy or RetryPolicy()
        self.error_mapper = error_mapper or ErrorMapper()
        self._verify: Union[str, bool] = config.ca_path or True

    def __enter__(self) -> "TransportClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def send(
        self,
        method: str,
        uri: str,
        options: Union[RequestOptions, Mapping[str, Any], None] = None,
    ) -> ResponseEnvelope:
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        opts = RequestOptions.coerce(options)
        url = f"{self.config.base_url}{uri}"
        headers: Dict[str, str] = {"Accept": "application/json"}
        headers.update(opts.headers)
        data = _encode_body(opts.body)

        deadline_at = None
        if opts.deadline is not None:
            deadline_at = time.monotonic() + opts.deadline
        state = RetryState(max_retries=self.config.max_retries)

        while True:
            self._ensure_active(opts.cancel_event, deadline_at, method, url)
            logger.debug(
                "Swish API request %s %s",
                method,
                url,
                extra={"method": method, "uri": url, "attempt": state.attempt},
            )

            outcome: Union[ResponseEnvelope, requests.RequestException]
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=headers,
                    data=data,
                    timeout=self._attempt_timeout(deadline_at, method, url),
                    verify=self._verify,
                    allow_redirects=False,
                )
            except requests.RequestException as exc:
                outcome = exc
                last_response = None
            else:
                try:
                    self._ensure_active(opts.cancel_event, deadline_at, method, url)
                except SwishError:
                    response.close()
                    raise
                envelope = ResponseEnvelope.from_requests(response)
                logger.debug(
                    "Swish API response %s %s -> %s",
                    method,
                    url,
                    envelope.status_code,
                    extra={"method": method, "uri": url, "status": envelope.status_code},
                )
                if envelope.is_successful():
                    return envelope
                outcome = envelope
                last_response = response

            decision = self.retry_policy.should_retry(state.attempt, state.max_retries, outcome)
            if not decision.retry:
                raise self._terminal_error(outcome, last_response, method, url)

            logger.info(
                "Retrying Swish API request %s %s in %d ms (attempt %d of %d)",
                method,
                url,
                decision.delay_ms,
                state.attempt + 1,
                state.max_retries,
                extra={"method": method, "uri": url, "attempt": state.attempt + 1},
            )
            self._wait(decision.delay_ms / 1000.0, opts.cancel_event, deadline_at, method, url)
            state.advance()

    def _attempt_timeout(
        self,
        deadline_at: Optional[float],
        method: str,
        url: str,
    ) -> Tuple[float, float]:
        connect, read = float(self.config.connect_timeout), float(self.config.timeout)
        if deadline_at is None:
            return connect, read
        remaining = deadline_at - time.monotonic()
        if remaining <= 0:
            raise self._aborted("Request deadline exceeded", method, url)
        return min(connect, remaining), min(read, remaining)

    def _wait(
        self,
        seconds: float,
        cancel_event: Optional[threading.Event],
        deadline_at: Optional[float],
        method: str,
        url: str,
    ) -> None:
        if deadline_at is not None and time.monotonic() + seconds >= deadline_at:
            raise self._aborted("Request deadline exceeded before the next retry", method, url)
        if cancel_event is None:
            time.sleep(seconds)
            return
        if cancel_event.wait(seconds):
            raise self._aborted("Request cancelled", method, url)

    def _ensure_active(
        self,
        cancel_event: Optional[threading.Event],
        deadline_at: Optional[float],
        method: str,
        url: str,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise self._aborted("Request cancelled", method, url)
        if deadline_at is not None and time.monotonic() >= deadline_at:
            raise self._aborted("Request deadline exceeded", method, url)

    def _aborted(self, message: str, method: str, url: str) -> SwishError:
        logger.warning(
            "%s: %s %s",
            message,
            method,
            url,
            extra={"method": method, "uri": url},
        )
        return SwishError(ErrorKind.NETWORK, message)

    def _terminal_error(
        self,
        outcome: Union[ResponseEnvelope, requests.RequestException],
        response: Optional[requests.Response],
        method: str,
        url: str,
    ) -> SwishError:
        if not isinstance(outcome, ResponseEnvelope):
            logger.error(
                "Swish API connection failure %s %s",
                method,
                url,
                extra={"method": method, "uri": url, "error_type": type(outcome).__name__},
            )
            error = self.error_mapper.classify(None, (), outcome)
            error.__cause__ = outcome
            return error

        # Status only: error bodies may contain personal data.
        logger.warning(
            "Swish API error %s %s -> %s",
            method,
            url,
            outcome.status_code,
            extra={"method": method, "uri": url, "status": outcome.status_code},
        )
        cause = requests.HTTPError(
            f"HTTP {outcome.status_code} for {method} {url}",
            response=response,
        )
        error = self.error_mapper.classify(
            outcome.status_code,
            parse_error_records(outcome.body),
            cause,
        )
        error.__cause__ = cause
        return error
