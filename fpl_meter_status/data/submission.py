"""Submission inputs shared by single lookups and batches"""

from dataclasses import dataclass

from fpl_meter_status.errors import SubmissionError


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str

    def __repr__(self):
        return f"Credentials(username={self.username!r}, password='***')"


def validate_submission(credentials, tin):
    """Raise SubmissionError when any of the portal inputs is missing"""
    missing = []
    if credentials is None or not (credentials.username or "").strip():
        missing.append("username")
    if credentials is None or not credentials.password:
        missing.append("password")
    if not (tin or "").strip():
        missing.append("tin")
    if missing:
        raise SubmissionError(f"Missing required fields: {', '.join(missing)}")
