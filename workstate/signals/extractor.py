"""Pattern-based extraction of progress signals from raw text."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Pattern, Sequence, Tuple

from ..logging import get_logger
from ..models import Signal, SignalType, utcnow
from .patterns import (
    BLOCKER_QUESTION_INDICATORS,
    COMMIT_COMPLETION_PREFIXES,
    PATTERN_FAMILIES,
    SOURCE_MULTIPLIERS,
    TICKET_ID_PATTERNS,
)

_CONTEXT_RADIUS = 30
_CONTEXT_MAX_LENGTH = 100
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_MENTION = re.compile(r"@\w+")
_SENTENCE_SPLIT = re.compile(r"[.!]")
_WIP = re.compile(r"\bwip\b|work in progress")


class SignalExtractor:
    """Scans text for lexical pattern families and emits weighted signals."""

    def __init__(
        self,
        patterns: Mapping[SignalType, Sequence[str]] | None = None,
        *,
        source_multipliers: Mapping[str, float] | None = None,
    ) -> None:
        self.logger = get_logger("signals.extractor")
        self._families = self._compile_families(patterns or PATTERN_FAMILIES)
        self._ticket_patterns = self._compile_all(TICKET_ID_PATTERNS)
        self._source_multipliers = dict(source_multipliers or SOURCE_MULTIPLIERS)

    def extract(
        self,
        text: object,
        source: str,
        *,
        related_item_id: str | None = None,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        """Return one signal per matching pattern; malformed input yields no signals."""
        if not isinstance(text, str):
            if text is not None:
                self.logger.debug("Skipping non-text input of type %s", type(text).__name__)
            return []
        if not text.strip():
            return []

        timestamp = detected_at or utcnow()
        effective_id = related_item_id
        if effective_id is None:
            ticket_ids = self.extract_ticket_ids(text)
            effective_id = ticket_ids[0] if ticket_ids else None
        multiplier = self.source_multiplier(source)

        signals: List[Signal] = []
        for signal_type, compiled in self._families:
            for pattern in compiled:
                match = pattern.search(text)
                if match is None:
                    continue
                signals.append(
                    Signal(
                        type=signal_type,
                        weight=signal_type.default_weight * multiplier,
                        source=source,
                        context=_context_around(text, match.start(), match.end()),
                        detected_at=timestamp,
                        related_item_id=effective_id,
                    )
                )
        return signals

    def extract_ticket_ids(self, text: str) -> List[str]:
        """Return ticket references (``#123``, ``PROJ-12``, ``issue 7``) in order of discovery."""
        found: List[str] = []
        for pattern in self._ticket_patterns:
            for match in pattern.finditer(text):
                ticket = match.group(0).strip()
                if ticket and ticket not in found:
                    found.append(ticket)
        return found

    def source_multiplier(self, source: str) -> float:
        lowered = source.lower()
        if lowered in self._source_multipliers:
            return self._source_multipliers[lowered]
        family = lowered.split("_", 1)[0]
        return self._source_multipliers.get(family, 1.0)

    # ------------------------------------------------------------------
    # Source-specific helpers

    def extract_source_cues(
        self,
        title: object,
        content: object,
        source: str,
        *,
        related_item_id: str | None = None,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        """Signals carried by the shape of a source rather than its wording.

        Email subjects contribute reply and forward markers; commit titles
        contribute conventional completion prefixes; chat text contributes
        mentions and blocker questions. Other sources yield nothing.
        """
        timestamp = detected_at or utcnow()
        family = source.lower().split("_", 1)[0]
        if family == "email":
            return self._subject_cues(title, source, related_item_id, timestamp)
        if "commit" in source.lower():
            return self._commit_prefix_cues(title, source, related_item_id, timestamp)
        if family in ("chat", "teams"):
            texts = [text for text in (title, content) if isinstance(text, str) and text.strip()]
            stripped = _WHITESPACE.sub(" ", _HTML_TAG.sub(" ", " ".join(texts))).strip()
            return self._chat_cues(stripped, source, related_item_id, timestamp)
        return []

    def extract_from_email(
        self,
        subject: str,
        body: str | None,
        *,
        message_id: str | None = None,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        timestamp = detected_at or utcnow()
        signals = self.extract(
            subject, "email_subject", related_item_id=message_id, detected_at=timestamp
        )
        signals += self.extract(
            body, "email_body", related_item_id=message_id, detected_at=timestamp
        )
        signals += self._subject_cues(subject, "email", message_id, timestamp)
        return signals

    def extract_from_commit(
        self,
        message: str,
        *,
        commit_hash: str | None = None,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        if not isinstance(message, str) or not message.strip():
            return []
        timestamp = detected_at or utcnow()
        ticket_ids = self.extract_ticket_ids(message)
        related_id = ticket_ids[0] if ticket_ids else commit_hash
        multiplier = self.source_multiplier("commit")

        signals: List[Signal] = []
        wip_match = _WIP.search(message.lower())
        if wip_match is not None:
            signals.append(
                Signal(
                    type=SignalType.ACTIVITY,
                    weight=SignalType.ACTIVITY.default_weight * multiplier,
                    source="commit",
                    context=_context_around(message, wip_match.start(), wip_match.end()),
                    detected_at=timestamp,
                    related_item_id=related_id,
                )
            )
        signals += self._commit_prefix_cues(message, "commit", related_id, timestamp)
        signals += self.extract(
            message, "commit", related_item_id=related_id, detected_at=timestamp
        )
        return signals

    def extract_from_chat(
        self,
        content: str,
        *,
        message_id: str | None = None,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        if not isinstance(content, str):
            return []
        timestamp = detected_at or utcnow()
        stripped = _WHITESPACE.sub(" ", _HTML_TAG.sub(" ", content)).strip()
        signals = self.extract(
            stripped, "chat_message", related_item_id=message_id, detected_at=timestamp
        )
        signals += self._chat_cues(stripped, "chat_message", message_id, timestamp)
        return signals

    def extract_from_file_activity(
        self,
        file_name: str,
        change_type: str,
        *,
        detected_at: datetime | None = None,
    ) -> List[Signal]:
        timestamp = detected_at or utcnow()
        ticket_ids = self.extract_ticket_ids(file_name)
        related_id = ticket_ids[0] if ticket_ids else None
        change = change_type.strip().lower()

        mapping: Dict[str, Tuple[SignalType, float, str]] = {
            "created": (SignalType.COMMITMENT, 0.8, "New file created"),
            "added": (SignalType.COMMITMENT, 0.8, "New file created"),
            "modified": (SignalType.ACTIVITY, 0.7, "File modified"),
            "updated": (SignalType.ACTIVITY, 0.7, "File modified"),
            "deleted": (SignalType.ACTIVITY, 0.5, "File removed"),
            "removed": (SignalType.ACTIVITY, 0.5, "File removed"),
        }
        entry = mapping.get(change)
        if entry is None:
            return []
        signal_type, factor, label = entry
        return [
            Signal(
                type=signal_type,
                weight=signal_type.default_weight * factor * self.source_multiplier("file_change"),
                source="file_change",
                context=f"{label}: {file_name}",
                detected_at=timestamp,
                related_item_id=related_id,
            )
        ]

    # ------------------------------------------------------------------
    # Internal helpers

    def _subject_cues(
        self,
        subject: object,
        source: str,
        related_id: str | None,
        timestamp: datetime,
    ) -> List[Signal]:
        lowered = subject.lower().strip() if isinstance(subject, str) else ""
        if lowered.startswith("re:"):
            return [
                Signal(
                    type=SignalType.ACTIVITY,
                    weight=SignalType.ACTIVITY.default_weight * 0.7,
                    source=source,
                    context="Reply chain indicates ongoing activity",
                    detected_at=timestamp,
                    related_item_id=related_id,
                )
            ]
        if lowered.startswith(("fwd:", "fw:")):
            return [
                Signal(
                    type=SignalType.ESCALATION,
                    weight=SignalType.ESCALATION.default_weight * 0.5,
                    source=source,
                    context="Forwarded email may indicate escalation or sharing",
                    detected_at=timestamp,
                    related_item_id=related_id,
                )
            ]
        return []

    def _commit_prefix_cues(
        self,
        message: object,
        source: str,
        related_id: str | None,
        timestamp: datetime,
    ) -> List[Signal]:
        if not isinstance(message, str) or not message.strip():
            return []
        lowered = message.lower()
        for prefix in COMMIT_COMPLETION_PREFIXES:
            if lowered.startswith(prefix) or f"{prefix}:" in lowered or f"{prefix}(" in lowered:
                return [
                    Signal(
                        type=SignalType.COMPLETION,
                        weight=SignalType.COMPLETION.default_weight * self.source_multiplier("commit"),
                        source=source,
                        context=_truncate(message.splitlines()[0], 50),
                        detected_at=timestamp,
                        related_item_id=related_id,
                    )
                ]
        return []

    def _chat_cues(
        self,
        text: str,
        source: str,
        related_id: str | None,
        timestamp: datetime,
    ) -> List[Signal]:
        if not text:
            return []
        multiplier = self.source_multiplier("chat_message")
        signals: List[Signal] = []
        if _MENTION.search(text):
            signals.append(
                Signal(
                    type=SignalType.ACTIVITY,
                    weight=SignalType.ACTIVITY.default_weight * multiplier,
                    source=source,
                    context="Direct mention indicates engagement",
                    detected_at=timestamp,
                    related_item_id=related_id,
                )
            )

        if "?" in text:
            question = _question_sentence(text)
            lowered = question.lower()
            if any(indicator in lowered for indicator in BLOCKER_QUESTION_INDICATORS):
                # Questions are ambiguous evidence, so they count for less than explicit blockers.
                signals.append(
                    Signal(
                        type=SignalType.BLOCKER,
                        weight=SignalType.BLOCKER.default_weight * 0.6,
                        source=source,
                        context=_truncate(question, _CONTEXT_MAX_LENGTH),
                        detected_at=timestamp,
                        related_item_id=related_id,
                    )
                )
        return signals

    def _compile_families(
        self, families: Mapping[SignalType, Sequence[str]]
    ) -> List[Tuple[SignalType, List[Pattern[str]]]]:
        compiled: List[Tuple[SignalType, List[Pattern[str]]]] = []
        for signal_type in SignalType:
            compiled.append((signal_type, self._compile_all(families.get(signal_type, ()))))
        return compiled

    def _compile_all(self, patterns: Iterable[str]) -> List[Pattern[str]]:
        compiled: List[Pattern[str]] = []
        for raw in patterns:
            try:
                compiled.append(re.compile(raw, re.IGNORECASE))
            except re.error as exc:
                self.logger.warning("Skipping invalid signal pattern %r: %s", raw, exc)
        return compiled


def _context_around(text: str, start: int, end: int) -> str:
    left = max(0, start - _CONTEXT_RADIUS)
    right = min(len(text), end + _CONTEXT_RADIUS)
    return _truncate(text[left:right], _CONTEXT_MAX_LENGTH)


def _truncate(text: str, limit: int) -> str:
    snippet = text.strip()
    if len(snippet) > limit:
        snippet = snippet[:limit].rstrip() + "..."
    return snippet


def _question_sentence(text: str) -> str:
    for sentence in _SENTENCE_SPLIT.split(text):
        if "?" in sentence:
            return sentence.strip()
    return text


__all__ = ["SignalExtractor"]
