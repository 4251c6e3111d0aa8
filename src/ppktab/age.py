"""
Age domain model.

Ages appear in the age_of_onset / age_at_last_encounter columns and inside
HPO cells (onset, or onset/resolution). Each parsed Age carries the interval
of days relative to birth that it denotes, so that two ages can be ordered
even when one is an ISO-8601 duration and the other an HPO onset class.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .errors import CellParseError, ErrorKind

DAYS_PER_YEAR = 365.25
DAYS_PER_MONTH = DAYS_PER_YEAR / 12
# gestational ages count from the last menstrual period; birth is at 40 weeks
_TERM_BIRTH_DAYS = 280

_ISO8601_DURATION = re.compile(r"^P(?:(?P<y>\d+)Y)?(?:(?P<m>\d+)M)?(?:(?P<w>\d+)W)?(?:(?P<d>\d+)D)?$")
_GESTATIONAL_AGE = re.compile(r"^G(?P<weeks>\d+)w(?P<days>[0-6])d$")

_INF = float("inf")


def _gestation(weeks: int) -> float:
    return weeks * 7 - _TERM_BIRTH_DAYS


def _years(n: float) -> float:
    return n * DAYS_PER_YEAR


# HPO onset classes: label -> (HPO id, lower bound, upper bound) in days from birth
ONSET_TERMS: dict[str, tuple[str, float, float]] = {
    "Antenatal onset": ("HP:0030674", -_TERM_BIRTH_DAYS, 0),
    "Embryonal onset": ("HP:0011460", -_TERM_BIRTH_DAYS, _gestation(8)),
    "Fetal onset": ("HP:0011461", _gestation(8), 0),
    "Late first trimester onset": ("HP:0034199", _gestation(11), _gestation(14)),
    "Second trimester onset": ("HP:0034198", _gestation(14), _gestation(28)),
    "Third trimester onset": ("HP:0034197", _gestation(28), 0),
    "Congenital onset": ("HP:0003577", 0, 0),
    "Neonatal onset": ("HP:0003623", 0, 28),
    "Infantile onset": ("HP:0003593", 28, _years(1)),
    "Childhood onset": ("HP:0011463", _years(1), _years(5)),
    "Juvenile onset": ("HP:0003621", _years(5), _years(16)),
    "Adult onset": ("HP:0003581", _years(16), _INF),
    "Young adult onset": ("HP:0011462", _years(16), _years(40)),
    "Early young adult onset": ("HP:0025708", _years(16), _years(19)),
    "Intermediate young adult onset": ("HP:0025709", _years(19), _years(25)),
    "Late young adult onset": ("HP:0025710", _years(25), _years(40)),
    "Middle age onset": ("HP:0003596", _years(40), _years(60)),
    "Late onset": ("HP:0003584", _years(60), _INF),
}

# case-insensitive lookup, including the shorthand without " onset"
_ONSET_LOOKUP: dict[str, str] = {}
for _label in ONSET_TERMS:
    _ONSET_LOOKUP[_label.casefold()] = _label
    _ONSET_LOOKUP[_label.casefold().removesuffix(" onset")] = _label

UNKNOWN_AGE_TOKENS = {"unknown"}


class AgeKind(Enum):
    ISO8601 = auto()
    GESTATIONAL = auto()
    ONSET_CLASS = auto()
    UNKNOWN = auto()


@dataclass(frozen=True)
class Age:
    """
    A parsed age.

    Attributes:
        text: Normalized text (ISO duration, gestational age, onset label or "unknown").
        kind: Which grammar matched.
        lower: Earliest day (relative to birth) the age may denote, None if unknown.
        upper: Latest day (relative to birth) the age may denote, None if unknown.
        onset_term_id: HPO id of the onset class, for ONSET_CLASS ages.
    """

    text: str
    kind: AgeKind
    lower: Optional[float] = None
    upper: Optional[float] = None
    onset_term_id: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "Age":
        """Parse an age string; raises CellParseError(MALFORMED_AGE) when no grammar matches."""
        value = raw.strip()
        if not value:
            raise CellParseError(ErrorKind.MALFORMED_AGE, "Age is empty")

        if value.casefold() in UNKNOWN_AGE_TOKENS:
            return cls(text="unknown", kind=AgeKind.UNKNOWN)

        m = _ISO8601_DURATION.match(value)
        if m and any(m.group(g) for g in ("y", "m", "w", "d")):
            y, mo, w, d = (int(m.group(g) or 0) for g in ("y", "m", "w", "d"))
            days = y * DAYS_PER_YEAR + mo * DAYS_PER_MONTH + w * 7 + d
            return cls(text=value, kind=AgeKind.ISO8601, lower=days, upper=days)

        m = _GESTATIONAL_AGE.match(value)
        if m:
            weeks, days = int(m.group("weeks")), int(m.group("days"))
            if weeks > 44:
                raise CellParseError(ErrorKind.MALFORMED_AGE, f"Implausible gestational age {value!r}")
            offset = weeks * 7 + days - _TERM_BIRTH_DAYS
            return cls(text=value, kind=AgeKind.GESTATIONAL, lower=offset, upper=offset)

        label = _ONSET_LOOKUP.get(value.casefold())
        if label is not None:
            term_id, lower, upper = ONSET_TERMS[label]
            return cls(text=label, kind=AgeKind.ONSET_CLASS, lower=lower, upper=upper, onset_term_id=term_id)

        raise CellParseError(ErrorKind.MALFORMED_AGE, f"Malformed age string {value!r}")

    @property
    def is_known(self) -> bool:
        return self.kind is not AgeKind.UNKNOWN

    def is_after(self, other: "Age") -> bool:
        """
        True only if this age is certainly later than `other`,
        i.e. its earliest possible day lies after the other's latest one.
        """
        if not (self.is_known and other.is_known):
            return False
        return self.lower > other.upper

    @property
    def gestational_weeks_days(self) -> tuple[int, int]:
        m = _GESTATIONAL_AGE.match(self.text)
        if m is None:
            raise ValueError(f"{self.text!r} is not a gestational age")
        return int(m.group("weeks")), int(m.group("days"))

    def __str__(self) -> str:
        return self.text
