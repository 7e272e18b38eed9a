"""Assignee matching against an organization roster.

Names come back from the language model as the user wrote them ("Sarah",
"mike"). They are matched against the roster of member display names so the
task can be attached to real member records:
- A member matches if their full name contains the requested name
- Or if the requested name contains the member's first name
- Matching is case-insensitive and the first member in roster order wins
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from taskparse.services.date_parser import Confidence


@dataclass(frozen=True)
class AssigneeMatch:
    """A requested name bound to a roster member, if one was found."""

    requested_name: str
    matched_name: str | None = None
    confidence: Confidence = Confidence.LOW

    @property
    def is_match(self) -> bool:
        return self.matched_name is not None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "requestedName": self.requested_name,
            "matchedName": self.matched_name,
            "confidence": self.confidence.value,
        }


def _first_name(member: str) -> str:
    parts = member.split()
    return parts[0] if parts else ""


def match_assignee(name: str, roster: Sequence[str]) -> AssigneeMatch:
    """Match one requested name against the roster."""
    requested = name.strip().lower()
    if not requested:
        return AssigneeMatch(requested_name=name)

    for member in roster:
        member_lower = member.strip().lower()
        if not member_lower:
            continue
        if requested in member_lower or _first_name(member_lower) in requested:
            return AssigneeMatch(
                requested_name=name,
                matched_name=member,
                confidence=Confidence.HIGH,
            )

    return AssigneeMatch(requested_name=name)


def match_assignees(names: Iterable[str], roster: Sequence[str]) -> list[AssigneeMatch]:
    """Match each requested name; the result lines up 1:1 with ``names``."""
    return [match_assignee(name, roster) for name in names]


def matched_member_names(matches: Iterable[AssigneeMatch]) -> list[str]:
    """Distinct matched roster names, in match order."""
    names: list[str] = []
    for match in matches:
        if match.matched_name is not None and match.matched_name not in names:
            names.append(match.matched_name)
    return names
