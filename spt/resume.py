# spt/resume.py
from enum import Enum
from typing import Optional

from .models import AccountSnapshot


class ResumeDecision(str, Enum):
    SKIP = "skip"                  # still looking for the checkpointed item
    RESUME = "resume"              # this is the checkpointed item; it was already processed
    NOT_RESUMING = "not_resuming"  # live processing


class ResumeMatcher:
    """
    Skips candidates until the one equal to `checkpoint` shows up.
    Matching is structural over all four snapshot fields, so with duplicate
    snapshots the first occurrence wins.
    """

    def __init__(self, checkpoint: Optional[AccountSnapshot] = None):
        self.checkpoint = checkpoint
        self.resumed = checkpoint is None

    def decide(self, candidate: AccountSnapshot) -> ResumeDecision:
        if self.resumed:
            return ResumeDecision.NOT_RESUMING
        if candidate == self.checkpoint:
            self.resumed = True
            return ResumeDecision.RESUME
        return ResumeDecision.SKIP


def should_resume(candidate: AccountSnapshot, checkpoint: Optional[AccountSnapshot]) -> ResumeDecision:
    """Stateless form of ResumeMatcher.decide for a single candidate."""
    return ResumeMatcher(checkpoint).decide(candidate)
