"""OpenAI Responses API client with retry, request pacing and tagged logging."""

from __future__ import annotations

import json
import os
import time
import urllib.error
import urllib.request
import uuid
from typing import Any

DEFAULT_BASE_URL = "https://api.openai.com/v1"
MAX_RETRIES = 3
BASE_RETRY_DELAY_SEC = 1.0
MIN_REQUEST_INTERVAL_SEC = 1.0
RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

_last_request_at = 0.0


def _short_request_id() -> str:
    return uuid.uuid4().hex[:8]


def _approx_prompt_size(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str):
        return len(value)
    if isinstance(value, list):
        return sum(_approx_prompt_size(item) for item in value)
    if isinstance(value, dict):
        return sum(_approx_prompt_size(v) for v in value.values())
    return len(str(value))


def _extract_usage(data: dict[str, Any]) -> tuple[int | None, int | None]:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None, None
    input_tokens = usage.get("input_tokens")
    output_tokens = usage.get("output_tokens")
    if isinstance(input_tokens, int) and isinstance(output_tokens, int):
        return input_tokens, output_tokens
    return None, None


def _pace_requests(min_interval_sec: float) -> None:
    global _last_request_at
    wait = min_interval_sec - (time.monotonic() - _last_request_at)
    if _last_request_at and wait > 0:
        time.sleep(wait)
    _last_request_at = time.monotonic()


def _post_json(url: str, api_key: str, payload: dict[str, Any], timeout_sec: int) -> dict[str, Any]:
    req = urllib.request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        },
        method="POST",
    )
    with urllib.request.urlopen(req, timeout=timeout_sec) as resp:
        return json.loads(resp.read().decode("utf-8"))


def llm_call(feature: str, **kwargs: Any) -> dict[str, Any]:
    """Call the Responses API for ``feature``.

    Transport options (``api_key``, ``base_url``, ``timeout_sec``, ``max_retries``,
    ``retry_delay_sec``, ``min_interval_sec``) are popped from ``kwargs``; the rest
    is sent as the request body. Transient failures (network errors and the
    status codes in ``RETRYABLE_STATUS``) are retried with exponential backoff.
    Raises ``RuntimeError`` once retries are exhausted or on a non-retryable error.
    """
    request_id = _short_request_id()
    prompt_size = _approx_prompt_size(kwargs.get("input", kwargs.get("messages")))

    if os.getenv("DISABLE_LLM", "").strip() == "1":
        print(
            f"[LLM BLOCKED] feature={feature} request_id={request_id} "
            f"reason=DISABLE_LLM prompt_chars={prompt_size}"
        )
        raise RuntimeError("LLM call blocked by DISABLE_LLM=1")

    api_key = str(kwargs.pop("api_key", os.getenv("OPENAI_API_KEY", ""))).strip()
    if not api_key:
        raise RuntimeError("Missing OpenAI API key")

    base_url = str(kwargs.pop("base_url", DEFAULT_BASE_URL)).strip()
    timeout_sec = int(kwargs.pop("timeout_sec", 60))
    max_retries = int(kwargs.pop("max_retries", MAX_RETRIES))
    retry_delay_sec = float(kwargs.pop("retry_delay_sec", BASE_RETRY_DELAY_SEC))
    min_interval_sec = float(kwargs.pop("min_interval_sec", MIN_REQUEST_INTERVAL_SEC))
    url = f"{base_url.rstrip('/')}/responses"

    print(f"[LLM START] feature={feature} request_id={request_id}")
    started_at = time.monotonic()

    attempt = 0
    while True:
        attempt += 1
        _pace_requests(min_interval_sec)
        try:
            data = _post_json(url, api_key, kwargs, timeout_sec)
            break
        except urllib.error.HTTPError as exc:
            latency_ms = int((time.monotonic() - started_at) * 1000)
            print(
                f"[LLM ERROR] feature={feature} request_id={request_id} "
                f"latency_ms={latency_ms} status={exc.code} attempt={attempt}"
            )
            if exc.code not in RETRYABLE_STATUS or attempt > max_retries:
                detail = exc.read().decode("utf-8", errors="ignore")
                raise RuntimeError(f"LLM request failed ({exc.code}): {detail}") from exc
            exc.close()
        except urllib.error.URLError as exc:
            latency_ms = int((time.monotonic() - started_at) * 1000)
            print(
                f"[LLM ERROR] feature={feature} request_id={request_id} "
                f"latency_ms={latency_ms} reason={exc} attempt={attempt}"
            )
            if attempt > max_retries:
                raise RuntimeError(f"LLM request failed: {exc}") from exc

        delay = retry_delay_sec * (2 ** (attempt - 1))
        print(f"[LLM RETRY] feature={feature} request_id={request_id} attempt={attempt} delay_sec={delay:g}")
        time.sleep(delay)

    latency_ms = int((time.monotonic() - started_at) * 1000)
    input_tokens, output_tokens = _extract_usage(data)
    usage_log = ""
    if input_tokens is not None and output_tokens is not None:
        usage_log = f" input_tokens={input_tokens} output_tokens={output_tokens}"
    print(
        f"[LLM END] feature={feature} request_id={request_id} "
        f"latency_ms={latency_ms} prompt_chars={prompt_size} attempts={attempt}{usage_log}"
    )
    return data
