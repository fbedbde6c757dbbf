"""
Append-only execution trace for a single triage request.
Every step outcome and pre-step annotation is recorded in call order.
"""

from typing import Any, Optional

from fraud_triage.schemas import StepResult


SENSITIVE_KEYS = {"password", "api_key", "token", "secret", "otp", "email"}


class Trace:
    """
    Ordered record of every step's outcome for one request.

    Entries are keyed by a stable step key (``step_<n>_<name>``) and keep
    insertion order. Annotations record pre-step events such as PII
    redaction. Neither can be removed or overwritten once recorded.
    """

    def __init__(self, request_id: str):
        self.request_id = request_id
        self._entries: dict[str, StepResult] = {}
        self._annotations: list[str] = []

    def record(self, key: str, result: StepResult) -> None:
        """
        Append a step result.

        Args:
            key: Stable step key
            result: Outcome of the step

        Raises:
            ValueError: If the key was already recorded
        """
        if key in self._entries:
            raise ValueError(f"Trace entry '{key}' already recorded")
        self._entries[key] = result

    def annotate(self, tag: str) -> None:
        """Append a pre-step annotation."""
        self._annotations.append(tag)

    def get(self, key: str) -> Optional[StepResult]:
        return self._entries.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def annotations(self) -> list[str]:
        return list(self._annotations)

    @property
    def fallback_used(self) -> bool:
        """True if any recorded step fell back."""
        return any(result.fallback_used for result in self._entries.values())

    def entries(self) -> dict[str, StepResult]:
        """Return a copy of the ordered entries."""
        return dict(self._entries)

    def summary(self) -> dict[str, Any]:
        """
        Build a log-safe summary of the trace.

        Payloads are sanitized: sensitive fields are masked and long
        strings are truncated.
        """
        return {
            "request_id": self.request_id,
            "annotations": self.annotations,
            "steps": {
                key: {
                    "status": result.status.value,
                    "duration_ms": result.duration_ms,
                    "fallback_used": result.fallback_used,
                    "error": result.error,
                    "payload": sanitize_data(
                        result.payload.model_dump(mode="json")
                    ),
                }
                for key, result in self._entries.items()
            },
        }


def sanitize_data(data: Any) -> Any:
    """
    Sanitize data for logging.

    - Masks sensitive fields
    - Truncates very large strings
    - Limits long lists to 100 items
    """
    if isinstance(data, dict):
        sanitized = {}
        for key, value in data.items():
            if str(key).lower() in SENSITIVE_KEYS:
                sanitized[key] = "***REDACTED***"
                continue
            sanitized[key] = sanitize_data(value)
        return sanitized

    if isinstance(data, list):
        return [sanitize_data(item) for item in data[:100]]

    if isinstance(data, str) and len(data) > 1000:
        return data[:1000] + "... (truncated)"

    return data
