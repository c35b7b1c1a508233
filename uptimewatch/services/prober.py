import time
from datetime import UTC, datetime

import httpx

from uptimewatch.domain.models import PollResult

PROBE_TIMEOUT_S = 30.0
MAX_ERROR_LENGTH = 512


def describe_error(exc: Exception) -> str:
    message = str(exc) or exc.__class__.__name__
    return message[:MAX_ERROR_LENGTH]


def _elapsed_ms(started: float) -> int:
    return round((time.perf_counter() - started) * 1000)


def _offline(started: float, error: str) -> PollResult:
    return PollResult(
        timestamp=datetime.now(UTC),
        outcome='offline',
        response_time_ms=_elapsed_ms(started),
        status_code=0,
        error=error,
    )


def classify_status(status_code: int) -> str:
    if 200 <= status_code < 400:
        return 'online'
    return 'offline'


def _read_within(response: httpx.Response, started: float, timeout_s: float) -> bool:
    """Drain the body; False once the whole request has run past ``timeout_s``."""
    for _ in response.iter_raw():
        if time.perf_counter() - started > timeout_s:
            return False
    return time.perf_counter() - started <= timeout_s


def http_probe(
    url: str,
    timeout_s: float = PROBE_TIMEOUT_S,
    client: httpx.Client | None = None,
) -> PollResult:
    """GET ``url`` once and classify the outcome.

    Received responses carry their status code; only 2xx and 3xx count as
    online. ``timeout_s`` bounds the whole request, body included, not each
    socket operation. Anything that prevents a response (timeouts, DNS,
    refused connections, unencodable hosts) comes back as an offline result
    with ``status_code=0`` and an error description instead of raising.
    """
    started = time.perf_counter()
    timed_out = f'timeout after {timeout_s:g}s'
    try:
        if client is None:
            with httpx.Client(timeout=timeout_s, follow_redirects=True) as owned:
                with owned.stream('GET', url) as response:
                    completed = _read_within(response, started, timeout_s)
        else:
            with client.stream('GET', url, timeout=timeout_s, follow_redirects=True) as response:
                completed = _read_within(response, started, timeout_s)
    except httpx.TimeoutException:
        return _offline(started, timed_out)
    except Exception as exc:
        # httpx.HTTPError and InvalidURL, but also a bare UnicodeError from
        # IDNA encoding of an over-long host label
        return _offline(started, describe_error(exc))

    if not completed:
        return _offline(started, timed_out)
    return PollResult(
        timestamp=datetime.now(UTC),
        outcome=classify_status(response.status_code),
        response_time_ms=_elapsed_ms(started),
        status_code=response.status_code,
    )
