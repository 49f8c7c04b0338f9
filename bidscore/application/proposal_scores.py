"""
Score engine: submit, revise and finalize per-criterion proposal scores.

Each (proposal, criterion) cell holds at most one current ProposalScore row.
Revisions update that row in place and append one ProposalScoreHistory row;
both writes are committed together or rolled back together.

Scoring a proposal that is already accepted/approved/rejected is allowed, but
the result carries locked_proposal_warning=True so the caller can warn.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bidscore.domain.scoring import (
    ScoreWriteResult, ScoringValidationError, ScoringNotFoundError,
    calculate_weighted_score, is_locked_status,
    validate_raw_score, validate_notes, validate_revision_reason,
    NOT_FOUND, CRITERION_MISMATCH, DUPLICATE_SCORE, NO_CHANGE_DETECTED,
)
from bidscore.infrastructure.db.models import (
    ProposalModel, ScoringCriterionModel, ScoringTemplateModel,
    ProposalScoreModel, ProposalScoreHistoryModel,
)


logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_proposal(db: Session, proposal_id: int) -> ProposalModel:
    proposal = db.query(ProposalModel).filter(ProposalModel.id == proposal_id).first()
    if not proposal:
        raise ScoringNotFoundError(NOT_FOUND, f"Proposal #{proposal_id} not found")
    return proposal


class SubmitScoreUseCase:
    """First score for an unscored (proposal, criterion) cell."""

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        proposal_id: int,
        criterion_id: int,
        raw_score: Any,
        scored_by: int,
        notes: str | None = None,
    ) -> ScoreWriteResult:
        raw = validate_raw_score(raw_score)
        notes = validate_notes(notes)

        proposal = _get_proposal(self.db, proposal_id)
        criterion = self.db.query(ScoringCriterionModel).filter(
            ScoringCriterionModel.id == criterion_id,
        ).first()
        if not criterion:
            raise ScoringNotFoundError(NOT_FOUND, f"Criterion #{criterion_id} not found")

        template_project_id = self.db.query(ScoringTemplateModel.project_id).filter(
            ScoringTemplateModel.id == criterion.template_id,
        ).scalar()
        if template_project_id != proposal.project_id:
            raise ScoringValidationError(
                CRITERION_MISMATCH,
                "Criterion does not belong to the scoring template of this proposal's project",
            )

        existing = self.db.query(ProposalScoreModel.id).filter(
            ProposalScoreModel.proposal_id == proposal_id,
            ProposalScoreModel.criterion_id == criterion_id,
        ).first()
        if existing:
            raise ScoringValidationError(
                DUPLICATE_SCORE,
                "This criterion is already scored for this proposal; revise the score instead",
            )

        locked = is_locked_status(proposal.status)
        score = ProposalScoreModel(
            proposal_id=proposal_id,
            criterion_id=criterion_id,
            raw_score=raw,
            weighted_score=calculate_weighted_score(raw, criterion.weight),
            notes=notes,
            scored_by=scored_by,
            scored_at=_now(),
            is_final=locked,
        )
        self.db.add(score)
        try:
            self.db.commit()
        except IntegrityError as exc:
            # A concurrent submit for the same cell won the unique constraint
            self.db.rollback()
            raise ScoringValidationError(
                DUPLICATE_SCORE,
                "This criterion is already scored for this proposal; revise the score instead",
            ) from exc

        logger.info(
            "Score submitted: proposal=%d criterion=%d raw=%s weighted=%s by user %d",
            proposal_id, criterion_id, score.raw_score, score.weighted_score, scored_by,
        )
        if locked:
            logger.warning("Proposal %d is %s; score recorded on a locked proposal", proposal_id, proposal.status)

        return ScoreWriteResult(
            score_id=score.id,
            raw_score=score.raw_score,
            weighted_score=score.weighted_score,
            locked_proposal_warning=locked,
        )


class ReviseScoreUseCase:
    """
    Change an existing score with a mandatory reason.

    new_raw_score / new_notes set to None mean "leave as is"; pass "" as
    new_notes to clear the notes.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        proposal_id: int,
        criterion_id: int,
        reason: str,
        revised_by: int,
        new_raw_score: Any = None,
        new_notes: str | None = None,
    ) -> ScoreWriteResult:
        reason = validate_revision_reason(reason)

        proposal = _get_proposal(self.db, proposal_id)
        score = self.db.query(ProposalScoreModel).filter(
            ProposalScoreModel.proposal_id == proposal_id,
            ProposalScoreModel.criterion_id == criterion_id,
        ).with_for_update().first()
        if not score:
            raise ScoringNotFoundError(
                NOT_FOUND,
                f"No score recorded for criterion #{criterion_id} on proposal #{proposal_id}",
            )

        raw = score.raw_score
        if new_raw_score is not None:
            raw = validate_raw_score(new_raw_score, "New score")
        notes = score.notes
        if new_notes is not None:
            notes = validate_notes(new_notes)

        raw_changed = raw != score.raw_score
        notes_changed = notes != score.notes
        if not raw_changed and not notes_changed:
            raise ScoringValidationError(
                NO_CHANGE_DETECTED, "The revision does not change the score or the notes"
            )

        locked = is_locked_status(proposal.status)
        weighted = calculate_weighted_score(raw, score.criterion.weight)
        revised_at = _now()

        history = ProposalScoreHistoryModel(
            proposal_score_id=score.id,
            proposal_id=proposal_id,
            criterion_id=criterion_id,
            previous_raw_score=score.raw_score,
            new_raw_score=raw,
            previous_weighted_score=score.weighted_score,
            new_weighted_score=weighted,
            previous_notes=score.notes,
            new_notes=notes,
            reason=reason,
            revised_by=revised_by,
            revised_at=revised_at,
        )

        score.raw_score = raw
        score.weighted_score = weighted
        score.notes = notes
        score.scored_by = revised_by
        score.scored_at = revised_at
        score.is_final = score.is_final or locked

        self.db.add(history)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Score revised: proposal=%d criterion=%d raw %s -> %s by user %d",
            proposal_id, criterion_id, history.previous_raw_score, history.new_raw_score, revised_by,
        )
        if locked:
            logger.warning("Proposal %d is %s; score revised on a locked proposal", proposal_id, proposal.status)

        return ScoreWriteResult(
            score_id=score.id,
            raw_score=score.raw_score,
            weighted_score=score.weighted_score,
            locked_proposal_warning=locked,
        )


class FinalizeScoringUseCase:
    """Mark every current score of a proposal as final."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, proposal_id: int) -> int:
        _get_proposal(self.db, proposal_id)
        updated = self.db.query(ProposalScoreModel).filter(
            ProposalScoreModel.proposal_id == proposal_id,
            ProposalScoreModel.is_final == False,  # noqa: E712
        ).update({"is_final": True}, synchronize_session="fetch")
        self.db.commit()

        logger.info("Scoring finalized for proposal %d (%d score(s))", proposal_id, updated)
        return updated


# ── Read Service ──

class ScoreReadService:
    """Read-only queries for current scores and revision history."""

    def __init__(self, db: Session):
        self.db = db

    def list_scores(self, proposal_id: int) -> list[ProposalScoreModel]:
        """Current scores of a proposal in criterion display order."""
        return self.db.query(ProposalScoreModel).join(
            ScoringCriterionModel, ScoringCriterionModel.id == ProposalScoreModel.criterion_id,
        ).filter(
            ProposalScoreModel.proposal_id == proposal_id,
        ).order_by(ScoringCriterionModel.order_index).all()

    def get_score(self, proposal_id: int, criterion_id: int) -> ProposalScoreModel | None:
        return self.db.query(ProposalScoreModel).filter(
            ProposalScoreModel.proposal_id == proposal_id,
            ProposalScoreModel.criterion_id == criterion_id,
        ).first()

    def iter_score_history(self, proposal_id: int, criterion_id: int) -> Iterator[ProposalScoreHistoryModel]:
        """
        Revisions of one cell, oldest first.

        Each call runs a fresh query when iteration starts; nothing is cached
        between calls.
        """
        query = self.db.query(ProposalScoreHistoryModel).filter(
            ProposalScoreHistoryModel.proposal_id == proposal_id,
            ProposalScoreHistoryModel.criterion_id == criterion_id,
        ).order_by(ProposalScoreHistoryModel.revised_at, ProposalScoreHistoryModel.id)
        yield from query

    def list_proposal_history(self, proposal_id: int) -> list[ProposalScoreHistoryModel]:
        """All revisions across a proposal's criteria, oldest first."""
        return self.db.query(ProposalScoreHistoryModel).filter(
            ProposalScoreHistoryModel.proposal_id == proposal_id,
        ).order_by(ProposalScoreHistoryModel.revised_at, ProposalScoreHistoryModel.id).all()
