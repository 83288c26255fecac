"""
Roster
Version: 2.0

Typed candidate roster.

Upstream sends people as "Name - Role" strings. They are parsed into
Person objects right after normalization; the raw string is kept as
`label` because submissions echo it back verbatim.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

ROLE_SEPARATOR = " - "
DOP_MARKER = "DOP"


class Role(str, Enum):
    CREATOR = "Creator"
    DOP = "DOP"


@dataclass(frozen=True)
class Person:
    """One roster entry."""
    name: str
    role: Role
    label: str

    @property
    def is_dop(self) -> bool:
        return self.role == Role.DOP

    @property
    def key(self) -> str:
        """Case-insensitive identity used for matching and diffs."""
        return self.name.strip().lower()


def parse_person(label: str) -> Person:
    """
    "Ravi - DOP" -> Person("Ravi", DOP, "Ravi - DOP").

    Any label containing "DOP" is a DOP, matching the upstream convention.
    """
    label = str(label or "").strip()
    name = label.split(ROLE_SEPARATOR)[0].strip()
    role = Role.DOP if DOP_MARKER in label else Role.CREATOR
    return Person(name=name, role=role, label=label)


def parse_roster(labels: Iterable[str]) -> List[Person]:
    people = []
    for label in labels:
        if not str(label or "").strip():
            continue
        people.append(parse_person(label))
    return people


def partition(people: Iterable[Person]) -> tuple:
    """Split into (dops, creators), each sorted alphabetically by label."""
    dops = sorted((p for p in people if p.is_dop), key=lambda p: p.label)
    creators = sorted((p for p in people if not p.is_dop), key=lambda p: p.label)
    return dops, creators


def cast_order(people: Iterable[Person]) -> List[Person]:
    """Full roster for the cast picker: DOPs first, then alphabetical."""
    return sorted(people, key=lambda p: (0 if p.is_dop else 1, p.label.lower()))


def label_matches_user(label: str, user_name: str) -> bool:
    """
    True when a roster label belongs to user_name.

    "Deepak Sharma - Creator" matches "deepak sharma";
    "Deepak Sharma2 - Creator" does not.
    """
    current = (user_name or "").strip().lower()
    if not current:
        return False
    entry = str(label or "").strip().lower()
    return (
        entry == current
        or entry.startswith(current + " -")
        or entry.startswith(current + " ")
    )


def roster_contains_user(labels: Iterable[str], user_name: str) -> bool:
    return any(label_matches_user(label, user_name) for label in labels)


@dataclass
class RosterSelection:
    """
    DOP and cast picks over one roster.

    A person picked as DOP is disabled in the cast picker and removed from
    the cast picks; releasing the DOP pick enables them again.
    """
    people: List[Person] = field(default_factory=list)
    dops: List[str] = field(default_factory=list)
    cast: List[str] = field(default_factory=list)

    @property
    def dop_candidates(self) -> List[Person]:
        return [p for p in self.people if p.is_dop]

    @property
    def cast_candidates(self) -> List[Person]:
        return cast_order(self.people)

    def find(self, label: str) -> Optional[Person]:
        for person in self.people:
            if person.label == label:
                return person
        return None

    def disabled_cast(self) -> Set[str]:
        return set(self.dops)

    def is_cast_disabled(self, label: str) -> bool:
        return label in self.dops

    def select_dop(self, label: str, selected: bool = True) -> None:
        person = self.find(label)
        if person is None or not person.is_dop:
            raise KeyError(f"Not a DOP on this roster: {label}")

        if selected:
            if label not in self.dops:
                self.dops.append(label)
            if label in self.cast:
                self.cast.remove(label)
                logger.debug(f"Removed {label} from cast after DOP pick")
        elif label in self.dops:
            self.dops.remove(label)

    def select_cast(self, label: str, selected: bool = True) -> bool:
        """Returns False when the pick is refused because the person is the DOP."""
        if self.find(label) is None:
            raise KeyError(f"Not on this roster: {label}")

        if selected:
            if self.is_cast_disabled(label):
                return False
            if label not in self.cast:
                self.cast.append(label)
        elif label in self.cast:
            self.cast.remove(label)
        return True

    def clear(self) -> None:
        self.dops = []
        self.cast = []
