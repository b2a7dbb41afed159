"""Custom exception hierarchy for the vigil package."""


class VigilError(Exception):
    """Base exception for all vigil errors."""


class ConfigurationError(VigilError):
    """Missing or invalid configuration."""


class EnvironmentValidationError(VigilError):
    """Test environment is not ready: application unreachable or files missing."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Test environment validation failed: " + "; ".join(self.problems))


class SuiteLaunchError(VigilError):
    """Child test-runner process could not be started."""

    def __init__(self, suite_name: str, message: str) -> None:
        self.suite_name = suite_name
        super().__init__(f"Failed to launch suite {suite_name!r}: {message}")


class ManifestError(VigilError):
    """Invalid suite manifest file."""
