"""Error taxonomy for a conversion job.

Every error is terminal for the job that raised it and is reported to the UI
exactly once as a human-readable message (see `JobFailed`).
"""


class ClipCatError(Exception):
    """Base class for all job-terminating errors."""

    pass


class ValidationError(ClipCatError):
    """Trim input is missing or inconsistent; no engine work is performed."""

    pass


class AnalysisError(ClipCatError):
    """Source has no usable video track or could not be probed."""

    pass


class BudgetExhaustedError(ClipCatError):
    """Fixed overhead and audio cost leave no bytes for video."""

    pass


class EncodeError(ClipCatError):
    """Transcode engine failed; never retried."""

    pass


class ConvergenceError(ClipCatError):
    """All encode attempts finished over the byte budget."""

    def __init__(self, attempts: int, last_size_bytes: int, target_bytes: int):
        self.attempts = attempts
        self.last_size_bytes = last_size_bytes
        self.target_bytes = target_bytes
        super().__init__(
            f"Could not fit the clip under {target_bytes} bytes after {attempts} attempts "
            f"(last output {last_size_bytes} bytes). Trim the clip further and try again."
        )
