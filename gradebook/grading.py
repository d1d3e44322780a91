"""
Grade band lookup.

A grading scheme is the in-memory form of a school's GradingSystem: a set of
score bands plus the pass mark. Nothing here touches the database.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple


class InvalidConfiguration(ValueError):
    """Raised when a grading scheme cannot grade anything (no bands)."""


def to_decimal(value):
    """Coerce a score to Decimal the way the models store it. None stays None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class GradeBand:
    min_score: Decimal
    max_score: Decimal
    grade: str
    remark: str

    def __post_init__(self):
        object.__setattr__(self, 'min_score', to_decimal(self.min_score))
        object.__setattr__(self, 'max_score', to_decimal(self.max_score))

    def contains(self, score):
        return self.min_score <= score <= self.max_score


@dataclass(frozen=True)
class GradeResult:
    grade: Optional[str]
    remark: Optional[str]
    band: Optional[GradeBand] = None

    @property
    def is_graded(self):
        return self.band is not None


# Score matched no band. Callers render this distinctly, never as a letter.
UNGRADED = GradeResult(grade=None, remark=None, band=None)


@dataclass(frozen=True)
class GradingScheme:
    bands: Tuple[GradeBand, ...]
    pass_mark: Decimal

    def __post_init__(self):
        if not self.bands:
            raise InvalidConfiguration('Grading system has no grade levels')
        ordered = tuple(sorted(self.bands, key=lambda b: b.min_score, reverse=True))
        object.__setattr__(self, 'bands', ordered)
        object.__setattr__(self, 'pass_mark', to_decimal(self.pass_mark))

    @classmethod
    def from_levels(cls, levels, pass_mark):
        """
        Build a scheme from (min_score, max_score, grade, remark) tuples.

        Args:
            levels: iterable of 4-tuples
            pass_mark: minimum subject total that counts as a pass

        Returns:
            GradingScheme
        """
        return cls(
            bands=tuple(GradeBand(*level) for level in levels),
            pass_mark=pass_mark,
        )

    def is_passing(self, score):
        return is_passing(score, self.pass_mark)


def resolve_grade(score, scheme):
    """
    Look up the grade band for a score.

    Bands are scanned highest first, so an overlapping (malformed) scheme
    always resolves to the same band. A score outside every band returns
    UNGRADED rather than a default grade.
    """
    if scheme is None or not scheme.bands:
        raise InvalidConfiguration('Grading system has no grade levels')
    if score is None:
        return UNGRADED

    score = to_decimal(score)
    for band in scheme.bands:
        if band.contains(score):
            return GradeResult(grade=band.grade, remark=band.remark, band=band)
    return UNGRADED


def is_passing(score, pass_mark):
    if score is None:
        return False
    return to_decimal(score) >= to_decimal(pass_mark)


def fallback_grading_scheme():
    """Built-in scheme for schools that have not configured a grading system."""
    from . import config
    return GradingScheme.from_levels(config.FALLBACK_GRADE_LEVELS, config.DEFAULT_PASS_MARK)
