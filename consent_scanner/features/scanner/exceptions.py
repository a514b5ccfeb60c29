class ScanError(Exception):
    """A scan could not produce a result."""


class EngineCrashError(ScanError):
    """The browser process died underneath the scan."""


class NavigationTimeoutError(ScanError):
    """The target did not reach network idle within the navigation timeout."""


class NavigationError(ScanError):
    """The target could not be loaded (DNS, TLS, refused connection...)."""


class AnalysisError(ScanError):
    """A collaborator failed while analysing the loaded page."""

    def __init__(self, phase: str, message: str):
        super().__init__(f"{phase} failed: {message}")
        self.phase = phase
