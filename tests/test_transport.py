import json
import logging
import ssl
import threading
import time
from collections import deque

import pytest
import requests

from conftest import FakeSession, ZeroJitter, make_response
from swish_payments.core.config import ClientConfig, ConfigError
from swish_payments.core.errors import ErrorKind, SwishError
from swish_payments.core.retry import RetryPolicy
from swish_payments.core.transport import (
    MutualTLSAdapter,
    RequestOptions,
    TransportClient,
    build_session,
    build_ssl_context,
)


def _client(config, session, **kwargs):
    return TransportClient(config, session=session, retry_policy=RetryPolicy(rng=ZeroJitter()), **kwargs)


def test_send_returns_envelope_on_success(config):
    session = FakeSession(make_response(200, b'{"status":"PAID"}', {"Location": "/x"}))

    envelope = _client(config, session).send("GET", "/swish-cpcapi/api/v1/paymentrequests/ABC")

    assert envelope.status_code == 200
    assert envelope.json() == {"status": "PAID"}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://swish.test/swish-cpcapi/api/v1/paymentrequests/ABC"
    assert call["verify"] is True
    assert call["allow_redirects"] is False
    assert call["timeout"] == (10.0, 30.0)


def test_accept_header_is_set_without_default_content_type(config):
    session = FakeSession(make_response(200))

    _client(config, session).send("GET", "/x")

    assert session.calls[0]["headers"] == {"Accept": "application/json"}
    assert session.calls[0]["data"] is None


def test_caller_controls_content_type(config):
    session = FakeSession(make_response(200), make_response(204))
    client = _client(config, session)

    client.send("PUT", "/a", {"json": {"amount": "100"}, "headers": {"Content-Type": "application/json"}})
    client.send(
        "PATCH",
        "/b",
        RequestOptions(
            body=[{"op": "replace", "path": "/status", "value": "cancelled"}],
            headers={"Content-Type": "application/json-patch+json"},
        ),
    )

    assert session.calls[0]["headers"]["Content-Type"] == "application/json"
    assert session.calls[1]["headers"]["Content-Type"] == "application/json-patch+json"
    assert json.loads(session.calls[1]["data"]) == [
        {"op": "replace", "path": "/status", "value": "cancelled"}
    ]


def test_json_body_keeps_unicode_unescaped(config):
    session = FakeSession(make_response(201))

    _client(config, session).send("POST", "/p", {"json": {"message": "Tack för köpet"}})

    assert session.calls[0]["data"] == '{"message":"Tack för köpet"}'.encode("utf-8")


def test_unsupported_method_is_rejected_before_io(config):
    session = FakeSession()

    with pytest.raises(ValueError):
        _client(config, session).send("TRACE", "/x")
    assert session.calls == []


def test_unknown_option_is_rejected(config):
    with pytest.raises(TypeError):
        _client(config, FakeSession()).send("GET", "/x", {"verify": False})


def test_retries_until_success(config, no_sleep):
    session = FakeSession(make_response(503), make_response(503), make_response(200))

    envelope = _client(config, session).send("GET", "/x")

    assert envelope.status_code == 200
    assert len(session.calls) == 3
    assert no_sleep == [1.0, 2.0]


def test_retry_loop_waits_for_computed_backoff(config):
    session = FakeSession(make_response(503), make_response(503), make_response(200))
    started = time.monotonic()

    envelope = _client(config, session).send("GET", "/x")

    assert envelope.is_successful()
    assert time.monotonic() - started >= 3.0


def test_exhausted_retries_raise_api_error(config, no_sleep):
    session = FakeSession(make_response(500), make_response(500), make_response(500))

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x")

    assert excinfo.value.kind is ErrorKind.API
    assert excinfo.value.status_code == 500
    assert len(session.calls) == 3
    assert isinstance(excinfo.value.__cause__, requests.HTTPError)


def test_retry_after_is_honoured(config, no_sleep):
    session = FakeSession(make_response(429, headers={"Retry-After": "7"}), make_response(200))

    _client(config, session).send("GET", "/x")

    assert no_sleep == [7.0]


@pytest.mark.parametrize(
    "status, kind",
    [(401, ErrorKind.AUTHENTICATION), (403, ErrorKind.AUTHENTICATION), (422, ErrorKind.VALIDATION), (404, ErrorKind.API)],
)
def test_terminal_status_is_not_retried(config, no_sleep, status, kind):
    body = b'[{"errorCode":"RP01","errorMessage":"Missing alias"}]'
    session = FakeSession(make_response(status, body))

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("PUT", "/x", {"json": {}})

    assert excinfo.value.kind is kind
    assert str(excinfo.value) == f"API error (HTTP {status}): Missing alias"
    assert excinfo.value.errors[0].error_code == "RP01"
    assert len(session.calls) == 1
    assert no_sleep == []


def test_redirect_is_terminal(config):
    session = FakeSession(make_response(302, headers={"Location": "https://elsewhere"}))

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x")

    assert excinfo.value.kind is ErrorKind.API


def test_connection_failure_is_retried(config, no_sleep):
    session = FakeSession(requests.ConnectionError("Name or service not known"), make_response(200))

    assert _client(config, session).send("GET", "/x").status_code == 200
    assert no_sleep == [1.0]


def test_persistent_connection_failure_raises_network_error(config, no_sleep):
    failure = requests.exceptions.SSLError("handshake failure")
    session = FakeSession(failure, failure, failure)

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x")

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert excinfo.value.status_code is None
    assert excinfo.value.__cause__ is failure
    assert excinfo.value.cause is failure
    assert len(session.calls) == 3


def test_read_timeout_is_terminal_network_error(config, no_sleep):
    session = FakeSession(requests.ReadTimeout("read timed out"))

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("POST", "/x", {"json": {}})

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert len(session.calls) == 1


def test_zero_retries_fail_on_first_error(config, no_sleep):
    zero = ClientConfig(
        cert_path="c", key_path="k", payee_alias="1", base_url_override="https://swish.test",
        max_retries=0, verify_cert_files=False,
    )
    session = FakeSession(make_response(503))

    with pytest.raises(SwishError):
        _client(zero, session).send("GET", "/x")
    assert len(session.calls) == 1


def test_cancel_event_aborts_backoff(config):
    session = FakeSession(make_response(503), make_response(200))
    cancel = threading.Event()
    timer = threading.Timer(0.1, cancel.set)
    timer.start()
    started = time.monotonic()

    try:
        with pytest.raises(SwishError) as excinfo:
            _client(config, session).send("GET", "/x", RequestOptions(cancel_event=cancel))
    finally:
        timer.cancel()

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert "cancelled" in str(excinfo.value)
    assert time.monotonic() - started < 1.0
    assert len(session.calls) == 1


def test_already_cancelled_call_does_no_io(config):
    cancel = threading.Event()
    cancel.set()
    session = FakeSession()

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x", {"cancel_event": cancel})

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert session.calls == []


def test_deadline_shorter_than_backoff_fails_fast(config):
    session = FakeSession(make_response(503), make_response(200))
    started = time.monotonic()

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x", RequestOptions(deadline=0.5))

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert "deadline" in str(excinfo.value)
    assert time.monotonic() - started < 0.5


def test_deadline_bounds_attempt_timeout(config):
    session = FakeSession(make_response(200))

    _client(config, session).send("GET", "/x", RequestOptions(deadline=2.0))

    connect, read = session.calls[0]["timeout"]
    assert 0 < connect <= 2.0
    assert 0 < read <= 2.0


def test_bodies_are_never_logged(config, caplog):
    caplog.set_level(logging.DEBUG, logger="swish_payments")
    session = FakeSession(make_response(422, b'[{"errorCode":"X","errorMessage":"ssn 197001019876 invalid"}]'))

    with pytest.raises(SwishError):
        _client(config, session).send("PUT", "/x", {"json": {"payeeSSN": "199001011234"}})

    assert "199001011234" not in caplog.text
    assert "197001019876" not in caplog.text
    assert "422" in caplog.text
    assert "PUT" in caplog.text


def test_close_closes_session(config):
    session = FakeSession()

    with _client(config, session):
        pass

    assert session.closed is True


def test_ssl_context_enforces_verification_and_tls12(tmp_path, key_file, cert_file):
    cfg = ClientConfig(
        cert_path=str(cert_file),
        key_path=str(key_file),
        payee_alias="1231181189",
    )

    context = build_ssl_context(cfg)

    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True
    assert context.minimum_version == ssl.TLSVersion.TLSv1_2


def test_ssl_context_loads_encrypted_key(encrypted_key_file, cert_file):
    from conftest import KEY_PASSPHRASE

    cfg = ClientConfig(
        cert_path=str(cert_file),
        key_path=str(encrypted_key_file),
        payee_alias="1231181189",
        passphrase=KEY_PASSPHRASE,
    )

    assert build_ssl_context(cfg).verify_mode == ssl.CERT_REQUIRED


def test_ssl_context_with_wrong_passphrase_is_config_error(encrypted_key_file, cert_file):
    cfg = ClientConfig(
        cert_path=str(cert_file),
        key_path=str(encrypted_key_file),
        payee_alias="1231181189",
        passphrase="wrong",
    )

    with pytest.raises(ConfigError):
        build_ssl_context(cfg)


def test_build_session_mounts_mutual_tls_adapter(key_file, cert_file):
    cfg = ClientConfig(cert_path=str(cert_file), key_path=str(key_file), payee_alias="1231181189")

    session = build_session(cfg)

    assert isinstance(session.get_adapter("https://cpc.getswish.net/"), MutualTLSAdapter)
    assert session.verify is True
    assert session.headers["Accept"] == "application/json"


class SlowSession(FakeSession):
    """Takes ``delay`` seconds per request and runs ``during`` while in flight."""

    def __init__(self, *outcomes, delay=0.2, during=None):
        super().__init__(*outcomes)
        self.delay = delay
        self.during = during

    def request(self, method, url, **kwargs):
        if self.during is not None:
            self.during()
        time.sleep(self.delay)
        return super().request(method, url, **kwargs)


def test_cancel_during_attempt_discards_successful_response(config):
    cancel = threading.Event()
    response = make_response(200, b'{"status":"PAID"}')
    closed = []
    response.close = lambda: closed.append(True)
    session = SlowSession(response, during=cancel.set)

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x", RequestOptions(cancel_event=cancel))

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert "cancelled" in str(excinfo.value)
    assert closed == [True]
    assert len(session.calls) == 1


def test_deadline_passing_during_attempt_is_network_error(config):
    session = SlowSession(make_response(200), delay=0.3)

    with pytest.raises(SwishError) as excinfo:
        _client(config, session).send("GET", "/x", RequestOptions(deadline=0.1))

    assert excinfo.value.kind is ErrorKind.NETWORK
    assert "deadline" in str(excinfo.value)


class ThreadSafeSession:
    """Per-URL scripted responses that several threads can share."""

    def __init__(self, outcomes):
        self._lock = threading.Lock()
        self._outcomes = {url: deque(items) for url, items in outcomes.items()}
        self.calls = []
        self.failure_served = threading.Event()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((threading.current_thread().name, url))
            response = self._outcomes[url].popleft()
        if response.status_code >= 500:
            self.failure_served.set()
        return response

    def close(self):
        pass


def test_backoff_suspends_only_the_waiting_thread(config):
    session = ThreadSafeSession(
        {
            "https://swish.test/slow": [make_response(503), make_response(200)],
            "https://swish.test/fast": [make_response(200)],
        }
    )
    client = _client(config, session)
    results = {}
    finished = {}

    def call(path):
        results[path] = client.send("GET", path)
        finished[path] = time.monotonic()

    slow = threading.Thread(target=call, args=("/slow",), name="slow")
    slow.start()
    assert session.failure_served.wait(5)

    fast = threading.Thread(target=call, args=("/fast",), name="fast")
    fast.start()
    fast.join(5)

    assert results["/fast"].status_code == 200
    assert slow.is_alive()

    slow.join(5)
    assert results["/slow"].status_code == 200
    assert finished["/fast"] < finished["/slow"]
    assert [url for name, url in session.calls if name == "slow"] == ["https://swish.test/slow"] * 2
    assert [url for name, url in session.calls if name == "fast"] == ["https://swish.test/fast"]


def test_connection_failure_log_names_only_method_and_uri(config, no_sleep, caplog):
    caplog.set_level(logging.ERROR, logger="swish_payments")
    failure = requests.ConnectionError("refused")
    session = FakeSession(failure, failure, failure)

    with pytest.raises(SwishError):
        _client(config, session).send("GET", "/x")

    record = caplog.records[-1]
    assert record.getMessage() == "Swish API connection failure GET https://swish.test/x"
    assert record.error_type == "ConnectionError"
