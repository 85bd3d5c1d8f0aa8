"""Exception types raised by the lookup automation"""


class LookupAutomationError(RuntimeError):
    """Base class for every error raised by the automation engine"""


class SubmissionError(LookupAutomationError):
    """Submission rejected before any browser work (missing fields)"""


class BatchTooLargeError(SubmissionError):
    """Batch exceeds the per-submission row cap"""

    def __init__(self, size, limit):
        self.size = size
        self.limit = limit
        super().__init__(
            f"Batch size too large. Maximum {limit} addresses allowed "
            f"(got {size}). Please split your CSV into smaller files."
        )


class RequiredStepError(LookupAutomationError):
    """A required flow step could not be completed - fatal to the current row"""

    def __init__(self, step_name, reason):
        self.step_name = step_name
        self.reason = reason
        super().__init__(f"Required step '{step_name}' failed: {reason}")


class SessionError(LookupAutomationError):
    """The browser session is unusable - fatal to the whole batch"""
