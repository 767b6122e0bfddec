"""
Errors raised inside the variant metrics pipeline.

SourceUnavailableError and EmptyMergeError never escape the sync
orchestrator; they select a branch of the fallback chain.
SettingsValidationError is raised at the settings boundary only.
"""


class MetricsPipelineError(Exception):
    """Base class for pipeline errors."""


class SourceUnavailableError(MetricsPipelineError):
    """Upstream fetch failed, timed out or returned an unusable payload."""


class EmptyMergeError(MetricsPipelineError):
    """Upstream fetch succeeded but produced zero variants."""


class SettingsValidationError(ValueError):
    """Malformed threshold / digest settings input."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        detail = "; ".join(f"{key}: {message}" for key, message in sorted(errors.items()))
        super().__init__(f"Invalid settings: {detail}")
