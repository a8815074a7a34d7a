"""
Assertion helpers for API responses.

Each helper logs what it checks and raises AssertionError on mismatch, so a
failing check reads like any other pytest assertion.
"""

import json
from typing import Any

import structlog

from healwright.api.client import ApiResponseData

logger = structlog.get_logger()

_MISSING = object()


def _field(response: ApiResponseData, key: str) -> Any:
    if not isinstance(response.body, dict):
        raise AssertionError(
            f"Expected a JSON object body to read '{key}', got {type(response.body).__name__}"
        )
    return response.body.get(key, _MISSING)


def validate_status(response: ApiResponseData, expected_status: int) -> None:
    logger.info("validating_status", expected=expected_status, actual=response.status)
    if response.status != expected_status:
        raise AssertionError(
            f"Expected status {expected_status}, got {response.status} "
            f"{response.status_text} for {response.method} {response.url}"
        )


def validate_body_contains_key(response: ApiResponseData, key: str) -> None:
    """Loose check: the key appears anywhere in the serialized body."""
    logger.info("validating_body_contains", key=key)
    body = response.body if isinstance(response.body, str) else json.dumps(response.body)
    if key not in body:
        raise AssertionError(f"Response body does not contain '{key}'")


def validate_body_field_equals(
    response: ApiResponseData, key: str, expected_value: Any
) -> None:
    logger.info("validating_body_field", key=key, expected=expected_value)
    actual = _field(response, key)
    if actual is _MISSING:
        raise AssertionError(f"Response body has no field '{key}'")
    if actual != expected_value:
        raise AssertionError(f"body.{key}: expected {expected_value!r}, got {actual!r}")


def validate_body_is_array(response: ApiResponseData, array_key: str) -> None:
    logger.info("validating_body_array", key=array_key)
    value = _field(response, array_key)
    if not isinstance(value, list):
        raise AssertionError(f"body.{array_key} is not an array")
    if not value:
        raise AssertionError(f"body.{array_key} is an empty array")


def validate_response_time(response: ApiResponseData, max_time_ms: float) -> None:
    logger.info(
        "validating_response_time",
        actual_ms=round(response.response_time_ms, 2),
        max_ms=max_time_ms,
    )
    if response.response_time_ms > max_time_ms:
        raise AssertionError(
            f"Response time {response.response_time_ms:.0f}ms exceeds {max_time_ms}ms"
        )


def validate_headers(response: ApiResponseData, expected_headers: dict[str, str]) -> None:
    """Each expected header must be present and contain the expected value."""
    for key, value in expected_headers.items():
        logger.info("validating_header", header=key, expected=value)
        actual = response.headers.get(key.lower())
        if actual is None:
            raise AssertionError(f"Header '{key}' is missing")
        if value not in actual:
            raise AssertionError(f"Header '{key}': expected to contain {value!r}, got {actual!r}")


def validate_schema(
    response: ApiResponseData, schema: dict[str, type | tuple[type, ...]]
) -> None:
    """Check that every field in ``schema`` exists with the expected type."""
    logger.info("validating_schema", fields=len(schema))
    for name, expected_type in schema.items():
        actual = _field(response, name)
        if actual is _MISSING:
            raise AssertionError(f"Schema field '{name}' is missing")
        allowed = expected_type if isinstance(expected_type, tuple) else (expected_type,)
        # bool is an int subclass; only accept it when asked for
        if isinstance(actual, bool) and bool not in allowed:
            raise AssertionError(f"Schema field '{name}': expected {expected_type}, got bool")
        if not isinstance(actual, expected_type):
            raise AssertionError(
                f"Schema field '{name}': expected {expected_type}, got {type(actual).__name__}"
            )
