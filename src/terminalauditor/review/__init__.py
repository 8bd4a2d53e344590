"""Reviewer client, directive parsing and the serialized review queue."""

from .agent import ClaudeReviewer, ReviewerAgent, ReviewerError, ReviewerReply
from .directives import parse_directives
from .queue import BudgetState, ReviewQueue, build_chunk_prompt, build_recalibration_prompt

__all__ = [
    "BudgetState",
    "ClaudeReviewer",
    "ReviewQueue",
    "ReviewerAgent",
    "ReviewerError",
    "ReviewerReply",
    "build_chunk_prompt",
    "build_recalibration_prompt",
    "parse_directives",
]
