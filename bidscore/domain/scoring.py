"""
Proposal scoring domain rules.

Pure functions and value types shared by the template store, the score engine
and the ranking calculator:

  - criterion / template validation (weights sum to 100 within tolerance)
  - raw score, notes and revision reason validation
  - weighted score arithmetic (Decimal, ROUND_HALF_UP at 2 decimals)
  - competition ranking ("1224")

Nothing here touches the database.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable


MIN_RAW_SCORE = Decimal("1")
MAX_RAW_SCORE = Decimal("10")
SCORE_DECIMAL_PLACES = 2

TOTAL_WEIGHT_REQUIRED = Decimal("100")
DEFAULT_WEIGHT_TOLERANCE = Decimal("0.01")
MIN_WEIGHT = Decimal("0")
MAX_WEIGHT = Decimal("100")

MIN_CRITERIA = 1
MAX_CRITERIA = 20
MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_NOTES_LENGTH = 2000
MAX_REASON_LENGTH = 500

MIN_PROPOSALS_FOR_COMPARISON = 2
MAX_PROPOSALS_FOR_COMPARISON = 4

# Scores on proposals in these statuses are conceptually final
LOCKED_PROPOSAL_STATUSES = ("accepted", "approved", "rejected")

_CENT = Decimal("0.01")


# ── Error kinds ──

SCORE_OUT_OF_RANGE = "ScoreOutOfRange"
INVALID_SCORE_PRECISION = "InvalidScorePrecision"
INVALID_WEIGHT = "InvalidWeight"
INVALID_WEIGHT_SUM = "InvalidWeightSum"
EMPTY_TEMPLATE = "EmptyTemplate"
INVALID_TEMPLATE = "InvalidTemplate"
INVALID_CRITERION = "InvalidCriterion"
TEMPLATE_EXISTS = "TemplateExists"
TEMPLATE_LOCKED = "TemplateLocked"
REASON_REQUIRED = "ReasonRequired"
INVALID_REASON = "InvalidReason"
INVALID_NOTES = "InvalidNotes"
NO_CHANGE_DETECTED = "NoChangeDetected"
CRITERION_MISMATCH = "CriterionMismatch"
DUPLICATE_SCORE = "DuplicateScore"
INVALID_COMPARISON = "InvalidComparison"
NOT_FOUND = "NotFound"
PROJECT_NOT_FOUND = "ProjectNotFound"


class ScoringError(ValueError):
    """Base scoring error: a machine-readable kind plus a message for the user"""

    def __init__(self, kind: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


class ScoringValidationError(ScoringError):
    pass


class ScoringNotFoundError(ScoringError):
    pass


# ── Value types ──

@dataclass(frozen=True)
class ScoreWriteResult:
    """Outcome of submitting or revising a score"""
    score_id: int
    raw_score: Decimal
    weighted_score: Decimal
    locked_proposal_warning: bool


@dataclass(frozen=True)
class ProposalRanking:
    """Derived ranking row; computed on demand, never persisted"""
    proposal_id: int
    total_weighted_score: Decimal
    rank: int
    criteria_scored_count: int
    criteria_total_count: int

    @property
    def is_fully_scored(self) -> bool:
        return self.criteria_total_count > 0 and self.criteria_scored_count == self.criteria_total_count


# ── Numbers ──

def _to_decimal(value: Any, kind: str, field_name: str) -> Decimal:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ScoringValidationError(kind, f"{field_name} is required")
    if isinstance(value, bool):
        raise ScoringValidationError(kind, f"{field_name} must be a valid number")
    try:
        # str() keeps floats like 7.3 exact instead of their binary expansion
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ScoringValidationError(kind, f"{field_name} must be a valid number")
    if not result.is_finite():
        raise ScoringValidationError(kind, f"{field_name} must be a finite number")
    return result


def validate_raw_score(value: Any, field_name: str = "Raw score") -> Decimal:
    """Parse a raw score and check it lies in [1, 10] with at most 2 decimals."""
    score = _to_decimal(value, SCORE_OUT_OF_RANGE, field_name)
    if score < MIN_RAW_SCORE or score > MAX_RAW_SCORE:
        raise ScoringValidationError(
            SCORE_OUT_OF_RANGE,
            f"{field_name} must be between {MIN_RAW_SCORE} and {MAX_RAW_SCORE}",
        )
    if score != score.quantize(_CENT):
        raise ScoringValidationError(
            INVALID_SCORE_PRECISION,
            f"{field_name} must have at most {SCORE_DECIMAL_PLACES} decimal places",
        )
    return score


def validate_weight(value: Any, field_name: str = "Weight") -> Decimal:
    weight = _to_decimal(value, INVALID_WEIGHT, field_name)
    if weight < MIN_WEIGHT or weight > MAX_WEIGHT:
        raise ScoringValidationError(
            INVALID_WEIGHT,
            f"{field_name} must be between {MIN_WEIGHT}% and {MAX_WEIGHT}%",
        )
    if weight != weight.quantize(_CENT):
        raise ScoringValidationError(
            INVALID_WEIGHT,
            f"{field_name} must have at most 2 decimal places",
        )
    return weight


def validate_weight_sum(weights: Iterable[Decimal], tolerance: Decimal = DEFAULT_WEIGHT_TOLERANCE) -> Decimal:
    """Check that weights add up to 100 within tolerance; returns the sum."""
    weights = list(weights)
    if not weights:
        raise ScoringValidationError(EMPTY_TEMPLATE, "At least one criterion with a weight is required")
    total = sum(weights, Decimal("0"))
    if abs(total - TOTAL_WEIGHT_REQUIRED) > Decimal(str(tolerance)):
        raise ScoringValidationError(
            INVALID_WEIGHT_SUM,
            f"Total weight must equal {TOTAL_WEIGHT_REQUIRED}% (current: {total.quantize(_CENT)}%)",
        )
    return total


def calculate_weighted_score(raw_score: Decimal, weight: Decimal) -> Decimal:
    """
    weighted = raw × weight / 100, rounded half away from zero to 2 decimals.

    >>> calculate_weighted_score(Decimal("7.3"), Decimal("15"))
    Decimal('1.10')
    """
    value = Decimal(raw_score) * Decimal(weight) / TOTAL_WEIGHT_REQUIRED
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_total_score(weighted_scores: Iterable[Decimal]) -> Decimal:
    total = sum((Decimal(s) for s in weighted_scores), Decimal("0"))
    return total.quantize(_CENT, rounding=ROUND_HALF_UP)


# ── Templates ──

def _normalize_text(value: str | None) -> str | None:
    return (value or "").strip() or None


def validate_template_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ScoringValidationError(INVALID_TEMPLATE, "Template name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ScoringValidationError(
            INVALID_TEMPLATE, f"Template name must be {MAX_NAME_LENGTH} characters or less"
        )
    return name


def validate_template_description(description: str | None) -> str | None:
    description = _normalize_text(description)
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ScoringValidationError(
            INVALID_TEMPLATE,
            f"Template description must be {MAX_DESCRIPTION_LENGTH} characters or less",
        )
    return description


def validate_criterion(criterion: dict[str, Any], position: int) -> dict[str, Any]:
    """Validate one criterion dict; position is 1-based and only used in messages."""
    prefix = f"Criterion {position}"
    name = (criterion.get("name") or "").strip()
    if not name:
        raise ScoringValidationError(INVALID_CRITERION, f"{prefix}: name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ScoringValidationError(
            INVALID_CRITERION, f"{prefix}: name must be {MAX_NAME_LENGTH} characters or less"
        )

    description = _normalize_text(criterion.get("description"))
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ScoringValidationError(
            INVALID_CRITERION,
            f"{prefix}: description must be {MAX_DESCRIPTION_LENGTH} characters or less",
        )

    weight = validate_weight(criterion.get("weight"), f"{prefix} weight")
    return {"name": name, "description": description, "weight": weight}


def validate_criteria(
    criteria: list[dict[str, Any]] | None,
    tolerance: Decimal = DEFAULT_WEIGHT_TOLERANCE,
) -> list[dict[str, Any]]:
    """
    Validate a full criteria set and assign order_index by input order.

    Raises:
        ScoringValidationError: EmptyTemplate, InvalidTemplate, InvalidCriterion,
            InvalidWeight or InvalidWeightSum
    """
    if not criteria:
        raise ScoringValidationError(EMPTY_TEMPLATE, "Template must have at least one criterion")
    if len(criteria) > MAX_CRITERIA:
        raise ScoringValidationError(
            INVALID_TEMPLATE, f"Template cannot have more than {MAX_CRITERIA} criteria"
        )

    normalized = []
    for index, raw in enumerate(criteria):
        item = validate_criterion(raw, index + 1)
        item["order_index"] = index
        normalized.append(item)

    names = [c["name"].lower() for c in normalized]
    if len(set(names)) != len(names):
        raise ScoringValidationError(INVALID_TEMPLATE, "Criterion names must be unique")

    validate_weight_sum([c["weight"] for c in normalized], tolerance)
    return normalized


# ── Scores ──

def validate_notes(notes: str | None) -> str | None:
    notes = _normalize_text(notes)
    if notes and len(notes) > MAX_NOTES_LENGTH:
        raise ScoringValidationError(
            INVALID_NOTES, f"Notes must be {MAX_NOTES_LENGTH} characters or less"
        )
    return notes


def validate_revision_reason(reason: str | None) -> str:
    reason = (reason or "").strip()
    if not reason:
        raise ScoringValidationError(REASON_REQUIRED, "Revision reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ScoringValidationError(
            INVALID_REASON, f"Revision reason must be {MAX_REASON_LENGTH} characters or less"
        )
    return reason


def is_locked_status(status: str | None) -> bool:
    return (status or "").lower() in LOCKED_PROPOSAL_STATUSES


# ── Ranking ──

def assign_competition_ranks(totals: list[Decimal]) -> list[int]:
    """
    Competition ranking over totals already sorted in descending order:
    equal totals share a rank and the next distinct total skips ahead.

    >>> assign_competition_ranks([Decimal("9"), Decimal("9"), Decimal("8.5")])
    [1, 1, 3]
    """
    ranks: list[int] = []
    for position, total in enumerate(totals, start=1):
        if ranks and total == totals[position - 2]:
            ranks.append(ranks[-1])
        else:
            ranks.append(position)
    return ranks


def validate_comparison_selection(proposal_ids: list[int]) -> None:
    if len(proposal_ids) < MIN_PROPOSALS_FOR_COMPARISON:
        raise ScoringValidationError(
            INVALID_COMPARISON,
            f"Select at least {MIN_PROPOSALS_FOR_COMPARISON} proposals to compare",
        )
    if len(proposal_ids) > MAX_PROPOSALS_FOR_COMPARISON:
        raise ScoringValidationError(
            INVALID_COMPARISON,
            f"Cannot compare more than {MAX_PROPOSALS_FOR_COMPARISON} proposals at once",
        )
    if len(set(proposal_ids)) != len(proposal_ids):
        raise ScoringValidationError(
            INVALID_COMPARISON, "Cannot compare the same proposal multiple times"
        )
