"""Centralized custom exception hierarchy for the orchestrator.

Every error carries a machine-readable ``code`` so callers can branch on the
kind of failure without string-matching messages.
"""
from __future__ import annotations


class ToolctlError(Exception):
    """Base class for all toolctl errors."""

    default_code = "TOOLCTL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ConfigError(ToolctlError):
    """Config layer missing, unreadable, unparseable or of the wrong version."""

    default_code = "CONFIG_ERROR"


class ManifestError(ToolctlError):
    """A single tool descriptor failed to load or validate."""

    default_code = "MANIFEST_ERROR"


class DiscoveryError(ToolctlError):
    """Discovery as a whole failed (not an individual manifest)."""

    default_code = "DISCOVERY_ERROR"


class RegistrationError(ToolctlError):
    default_code = "REGISTRATION_ERROR"


class ToolNotFoundError(ToolctlError):
    default_code = "TOOL_NOT_FOUND"


class RunnerError(ToolctlError):
    """Runner-level failure: spawn error, OS-level stream error."""

    default_code = "RUNNER_ERROR"


class RunnerGuardrailError(RunnerError):
    """A guardrail (timeout, maxOutputBytes, maxEvents) stopped the tool."""

    default_code = "RUNNER_GUARDRAIL"

    def __init__(self, message: str, guardrail: str):
        super().__init__(message)
        self.guardrail = guardrail


class NotImplementedRuntimeError(ToolctlError):
    default_code = "NOT_IMPLEMENTED"

    def __init__(self, runtime: str):
        super().__init__(f"Runner for runtime '{runtime}' is not yet implemented.")
        self.runtime = runtime


__all__ = [
    "ToolctlError",
    "ConfigError",
    "ManifestError",
    "DiscoveryError",
    "RegistrationError",
    "ToolNotFoundError",
    "RunnerError",
    "RunnerGuardrailError",
    "NotImplementedRuntimeError",
]
