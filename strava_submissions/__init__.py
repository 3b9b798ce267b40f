"""Strava run submission package."""

from .errors import SubmissionError
from .main import main
from .models import ExtractedFields, NormalizedSubmission, SubmissionForm

__all__ = [
    "main",
    "ExtractedFields",
    "NormalizedSubmission",
    "SubmissionError",
    "SubmissionForm",
]
