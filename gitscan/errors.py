"""Errors raised while starting or running a scan.

Each class corresponds to one user-facing outcome; the web layer maps them to
messages and never inspects the text.
"""


class ScanError(Exception):
    pass


class InvalidRepoUrl(ScanError):
    """Rejected locally, before any network call."""


class MissingCredentialError(ScanError):
    def __init__(self, message: str = "API Key is missing in environment variables."):
        super().__init__(message)


class RepositoryInaccessibleError(ScanError):
    def __init__(
        self,
        message: str = (
            "Could not find accessible code files in this repository. Please ensure the repository "
            "is public and contains supported code files (js, ts, py, etc.)."
        ),
    ):
        super().__init__(message)


class AnalysisFailedError(ScanError):
    def __init__(self, detail: str = ""):
        self.detail = detail
        message = "Failed to analyze code. Please try again."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
