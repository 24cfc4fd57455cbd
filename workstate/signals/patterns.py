"""Lexical pattern families used to detect progress signals."""

from __future__ import annotations

from typing import Dict, Tuple

from ..models import SignalType

PATTERN_FAMILIES: Dict[SignalType, Tuple[str, ...]] = {
    SignalType.COMMITMENT: (
        r"will (do|work on|start|implement|fix|handle|complete|address|review)",
        r"planning to",
        r"assigned to me",
        r"taking this",
        r"i'll handle",
        r"i will handle",
        r"picking up",
        r"starting on",
        r"going to (work on|start|implement|fix)",
        r"on my list",
        r"i can do",
        r"i can take",
        r"let me (handle|take|do|work on)",
        r"i'll (do|take|work on|start)",
        r"accepting",
        r"taking ownership",
    ),
    SignalType.ACTIVITY: (
        r"working on",
        r"in progress",
        r"updated",
        r"pushed",
        r"committed",
        r"sent (for review|update|feedback)",
        r"made changes",
        r"drafted",
        r"implementing",
        r"coding",
        r"developing",
        r"testing",
        r"reviewing",
        r"debugging",
        r"investigating",
        r"currently (working|doing|looking)",
        r"still working",
        r"making progress",
        r"halfway (through|done)",
        r"almost (done|finished|complete)",
        r"\bwip\b",
        r"work in progress",
    ),
    SignalType.BLOCKER: (
        r"blocked (by|on|due to)",
        r"waiting (on|for)",
        r"depends on",
        r"dependency",
        r"need .+ first",
        r"can't proceed",
        r"cannot proceed",
        r"stuck on",
        r"stuck at",
        r"pending .+ approval",
        r"awaiting",
        r"on hold",
        r"held up",
        r"blocking issue",
        r"\bblocker\b",
        r"prerequisite",
        r"need (input|feedback|approval|help) from",
        r"dependent on",
    ),
    SignalType.COMPLETION: (
        r"completed",
        r"\bdone\b",
        r"finished",
        r"merged",
        r"resolved",
        r"\bclosed\b",
        r"shipped",
        r"deployed",
        r"released",
        r"\bfixed\b",
        r"implemented",
        r"delivered",
        r"accomplished",
        r"wrapped up",
        r"task complete",
        r"work complete",
        r"checked in",
        r"pushed to (main|master|production)",
        r"live now",
        r"gone live",
    ),
    SignalType.ESCALATION: (
        r"urgent",
        r"\basap\b",
        r"immediately",
        r"critical",
        r"high priority",
        r"bumping this",
        r"following up",
        r"any update",
        r"reminder",
        r"time sensitive",
        r"deadline",
    ),
}

TICKET_ID_PATTERNS: Tuple[str, ...] = (
    r"#\d+",
    r"\b[A-Z]{2,}-\d+\b",
    r"\b(?:issue|bug|task|story|feature)[:#\s]*\d+",
    r"\b(?:work item|workitem|wi)[:#\s]*\d+",
)

# Relative credibility of each source; commits are the strongest evidence.
SOURCE_MULTIPLIERS: Dict[str, float] = {
    "commit": 1.3,
    "email_subject": 1.2,
    "email_body": 1.0,
    "email": 1.0,
    "chat": 0.9,
    "chat_message": 0.9,
    "teams": 0.9,
    "teams_message": 0.9,
    "file": 1.1,
    "file_change": 1.1,
}

REOPEN_KEYWORDS: Tuple[str, ...] = (
    "reopen",
    "reopened",
    "revert",
    "reverted",
    "rollback",
    "roll back",
    "undo",
    "back to",
)

BLOCKER_QUESTION_INDICATORS: Tuple[str, ...] = (
    "when can",
    "when will",
    "can you",
    "could you",
    "need help",
    "any update",
    "status",
    "eta",
    "blocker",
    "blocked",
    "waiting",
    "stuck",
)

COMMIT_COMPLETION_PREFIXES: Tuple[str, ...] = (
    "fix",
    "resolve",
    "close",
    "complete",
    "finish",
    "implement",
    "add",
    "merge",
)


__all__ = [
    "BLOCKER_QUESTION_INDICATORS",
    "COMMIT_COMPLETION_PREFIXES",
    "PATTERN_FAMILIES",
    "REOPEN_KEYWORDS",
    "SOURCE_MULTIPLIERS",
    "TICKET_ID_PATTERNS",
]
