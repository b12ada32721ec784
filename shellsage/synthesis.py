"""Parsing of the synthesis response contract (Summary / Follow-up Questions).

Parsing never raises: a response that does not follow the contract becomes
the summary verbatim, with no follow-up questions.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

__all__ = ["SynthesisResult", "parse_synthesis_response", "parse_numbered_questions", "MAX_FOLLOWUPS"]

MAX_FOLLOWUPS = 5

# "## Summary", "# Overall Summary:", "**Summary**", "**Summary:** inline text", "Summary:"
_HEADING_RE = re.compile(
    r"^(?:#{1,6}\s*(?P<hash>.+?)\s*:?\s*"
    r"|\*\*(?P<bold>[^*]+?)\s*:?\s*\*\*\s*:?\s*(?P<inline>.*)"
    r"|(?P<label>summary|follow-?up questions|questions)\s*:\s*)$",
    re.IGNORECASE,
)
_QUESTION_RE = re.compile(r"^([1-5])\.\s*(.*)$")


@dataclass
class SynthesisResult:
    summary: str
    followups: List[str] = field(default_factory=list)


def _section_of(line: str) -> Tuple[Optional[str], str]:
    """Return (section, inline_text) if ``line`` opens the summary or questions section."""
    match = _HEADING_RE.match(line.strip())
    if not match:
        return None, ""
    title = (match.group("hash") or match.group("bold") or match.group("label") or "").lower()
    inline = (match.group("inline") or "").strip()
    if "follow-up" in title or "followup" in title or "follow up" in title or "question" in title:
        return "questions", inline
    if "summary" in title:
        return "summary", inline
    # Any other heading ("### Architecture", "**Note**") is ordinary content.
    return None, ""


def _strip_number(line: str) -> Optional[str]:
    match = _QUESTION_RE.match(line.strip())
    if not match:
        return None
    question = match.group(2).strip()
    return question or None


def parse_numbered_questions(text: str, limit: int = MAX_FOLLOWUPS) -> List[str]:
    """Collect lines numbered ``1.``..``5.`` anywhere in ``text``."""
    questions: List[str] = []
    for line in text.splitlines():
        question = _strip_number(line)
        if question:
            questions.append(question)
            if len(questions) >= limit:
                break
    return questions


def parse_synthesis_response(response: str) -> SynthesisResult:
    summary_lines: List[str] = []
    questions: List[str] = []
    section = None
    saw_summary = False

    for line in response.splitlines():
        heading, inline = _section_of(line)
        if heading is not None:
            section = heading
            if heading == "summary":
                saw_summary = True
                if inline:
                    summary_lines.append(inline)
            continue

        if section == "summary":
            summary_lines.append(line)
        elif section == "questions" and len(questions) < MAX_FOLLOWUPS:
            question = _strip_number(line)
            if question:
                questions.append(question)

    summary = "\n".join(summary_lines).strip()
    if not saw_summary or not summary:
        return SynthesisResult(summary=response, followups=[] if not saw_summary else questions)
    return SynthesisResult(summary=summary, followups=questions)
