"""
Configuration Exception Classes

Errors raised while loading or validating emitter settings. They share the
ApplicationException base so callers can surface resolution steps.
"""

from typing import List, Optional

from core.exceptions import ApplicationException


class ConfigurationLoadError(ApplicationException):
    """Raised when a configuration source cannot be read or parsed."""

    def __init__(
        self,
        source: Optional[str] = None,
        reason: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[str] = None
    ):
        if field and reason:
            message = f"Configuration error for '{field}': {reason}"
        elif source and reason:
            message = f"Failed to load configuration from {source}: {reason}"
        elif source:
            message = f"Failed to load configuration from {source}"
        elif reason:
            message = f"Configuration error: {reason}"
        else:
            message = "Configuration loading failed"

        resolution_steps = [
            "Check that the configuration file exists and is readable",
            "Verify the YAML syntax is correct",
            "Check that .env file format is valid (KEY=value)",
            "Review environment variable overrides",
        ]

        super().__init__(
            message=message,
            resolution_steps=resolution_steps,
            details={"source": source, "field": field, "details": details}
        )
        self.source = source
        self.reason = reason
        self.field = field


class ConfigurationValidationError(ApplicationException):
    """Raised when loaded configuration values are out of range or inconsistent."""

    def __init__(
        self,
        errors: Optional[List[str]] = None,
        details: Optional[str] = None
    ):
        self.errors = errors or []

        if len(self.errors) == 1:
            message = f"Configuration validation failed: {self.errors[0]}"
        elif len(self.errors) > 1:
            message = f"Configuration validation failed with {len(self.errors)} errors"
        else:
            message = "Configuration validation failed"

        resolution_steps = [
            "Review the validation errors listed below",
            "Ensure device.min_interval_ms <= device.max_interval_ms",
            "Ensure storage.timezone is a valid IANA zone name (e.g. UTC, Europe/Paris)",
            "Ensure at least one Kafka broker is configured",
        ]

        super().__init__(
            message=message,
            resolution_steps=resolution_steps,
            details={"errors": self.errors, "details": details}
        )

    def get_user_message(self) -> str:
        """Get a formatted message with all validation errors."""
        parts = [self.message]
        if self.errors:
            parts.append("\nValidation errors:")
            for i, error in enumerate(self.errors, 1):
                parts.append(f"  {i}. {error}")
        if self.resolution_steps:
            parts.append("\nPossible solutions:")
            for i, step in enumerate(self.resolution_steps, 1):
                parts.append(f"  {i}. {step}")
        return "\n".join(parts)
