"""
Error Taxonomy
==============
Every failure snsctl reports derives from SnsctlError.

Errors carry the step that was being attempted and the last state that
was confirmed, so a failed deployment can be inspected and resumed by
hand. Value-moving calls are never retried; the annotation is the only
recovery aid.
"""

from typing import Any, Dict, Optional


class SnsctlError(Exception):
    """Base error. `step` and `last_state` are filled in by the caller that knows them."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        last_state: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step = step
        self.last_state = last_state
        self.progress: Dict[str, Any] = {}

    def annotate(
        self,
        step: str,
        last_state: str,
        progress: Optional[Dict[str, Any]] = None,
    ) -> "SnsctlError":
        """Attach orchestration context unless an inner layer already did."""
        if self.step is None:
            self.step = step
        if self.last_state is None:
            self.last_state = last_state
        for key, value in (progress or {}).items():
            self.progress.setdefault(key, value)
        return self

    def __str__(self) -> str:
        text = self.message
        if self.step:
            text = f"[{self.step}] {text}"
        if self.last_state:
            text += f" (last state: {self.last_state})"
        return text


class ConfigError(SnsctlError):
    """Bad static deployment parameters or environment."""


class IdentityError(SnsctlError):
    """Unreadable or corrupt key material."""


class InvalidArgument(SnsctlError):
    """Malformed principal, neuron id, amount or option."""


class NetworkError(SnsctlError):
    """Transport failure. The remote outcome is unknown."""


class RemoteReject(SnsctlError):
    """A service answered with an explicit error."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        code: Optional[int] = None,
        step: Optional[str] = None,
        last_state: Optional[str] = None,
    ):
        super().__init__(message, step=step, last_state=last_state)
        self.method = method
        self.code = code

    def __str__(self) -> str:
        base = super().__str__()
        if self.method:
            return f"{base} [{self.method}]"
        return base


class InsufficientBalance(SnsctlError):
    """Balance or amount below what the operation needs."""

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class TimeoutWaitingForState(SnsctlError):
    """A bounded poll ran out of attempts."""

    def __init__(self, description: str, attempts: int, last_observed: Any = None):
        super().__init__(
            f"Timed out waiting for {description} after {attempts} attempts "
            f"(last observed: {last_observed!r})"
        )
        self.description = description
        self.attempts = attempts
        self.last_observed = last_observed


class InconsistentState(SnsctlError):
    """Remote state contradicts what this run expects; needs manual resolution."""
