"""PII-safe ``extra=`` payloads for log records."""

from typing import Any

# Identifiers only; emails and message bodies never go into log context.
LOG_CONTEXT_KEYS = ("user_id", "org_id", "account_id", "job_id", "request_id", "route", "method")


def build_log_context(**values: Any) -> dict[str, str]:
    """Keep the known, non-empty keys and stringify them (UUIDs included)."""
    unknown = set(values) - set(LOG_CONTEXT_KEYS)
    if unknown:
        raise TypeError(f"Unsupported log context keys: {', '.join(sorted(unknown))}")
    return {key: str(values[key]) for key in LOG_CONTEXT_KEYS if values.get(key)}
