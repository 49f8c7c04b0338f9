"""
Tests for score submission, revision with audit history, and finalization.
"""
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from bidscore.application.proposal_scores import (
    SubmitScoreUseCase, ReviseScoreUseCase, FinalizeScoringUseCase, ScoreReadService,
)
from bidscore.application.scoring_templates import CreateScoringTemplateUseCase, ScoringTemplateReadService
from bidscore.domain.scoring import (
    ScoringValidationError, ScoringNotFoundError,
    SCORE_OUT_OF_RANGE, DUPLICATE_SCORE, CRITERION_MISMATCH, REASON_REQUIRED,
    NO_CHANGE_DETECTED, NOT_FOUND,
)
from bidscore.infrastructure.db.models import (
    ProjectModel, ProposalScoreModel, ProposalScoreHistoryModel,
)


@pytest.fixture
def criteria(db_session, project, standard_criteria):
    """Criteria of the project's template: Technical 30, Budget 25, Timeline 20, Team 25."""
    template_id = CreateScoringTemplateUseCase(db_session).execute(
        project_id=project.id, criteria=standard_criteria,
    )
    return ScoringTemplateReadService(db_session).list_criteria(template_id)


@pytest.fixture
def proposal(make_proposal):
    return make_proposal("Acme Builders")


class TestSubmitScore:
    def test_weighted_score_computed(self, db_session, proposal, criteria, reviewer_id):
        result = SubmitScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, 8, reviewer_id, notes="Solid plan",
        )

        assert result.raw_score == Decimal("8")
        assert result.weighted_score == Decimal("2.40")
        assert result.locked_proposal_warning is False

        score = ScoreReadService(db_session).get_score(proposal.id, criteria[0].id)
        assert score.id == result.score_id
        assert score.notes == "Solid plan"
        assert score.scored_by == reviewer_id
        assert score.is_final is False

    def test_out_of_range_rejected(self, db_session, proposal, criteria, reviewer_id):
        for value in (0, 11, "10.5"):
            with pytest.raises(ScoringValidationError) as exc:
                SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, value, reviewer_id)
            assert exc.value.kind == SCORE_OUT_OF_RANGE
        assert db_session.query(ProposalScoreModel).count() == 0

    def test_duplicate_rejected(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        with pytest.raises(ScoringValidationError) as exc:
            SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 5, reviewer_id)
        assert exc.value.kind == DUPLICATE_SCORE
        assert ScoreReadService(db_session).get_score(proposal.id, criteria[0].id).raw_score == Decimal("8")

    def test_criterion_from_other_project_rejected(
        self, db_session, criteria, make_proposal, client_user, reviewer_id,
    ):
        other = ProjectModel(client_id=client_user.id, title="Warehouse", status="open")
        db_session.add(other)
        db_session.commit()
        foreign_proposal = make_proposal("Other bid", project_id=other.id)

        with pytest.raises(ScoringValidationError) as exc:
            SubmitScoreUseCase(db_session).execute(foreign_proposal.id, criteria[0].id, 7, reviewer_id)
        assert exc.value.kind == CRITERION_MISMATCH

    def test_unknown_proposal_or_criterion(self, db_session, proposal, criteria, reviewer_id):
        with pytest.raises(ScoringNotFoundError):
            SubmitScoreUseCase(db_session).execute(999, criteria[0].id, 7, reviewer_id)
        with pytest.raises(ScoringNotFoundError):
            SubmitScoreUseCase(db_session).execute(proposal.id, 999, 7, reviewer_id)

    def test_locked_proposal_warns_and_marks_final(self, db_session, make_proposal, criteria, reviewer_id):
        accepted = make_proposal("Winner", status="accepted")

        result = SubmitScoreUseCase(db_session).execute(accepted.id, criteria[1].id, 9, reviewer_id)

        assert result.locked_proposal_warning is True
        assert ScoreReadService(db_session).get_score(accepted.id, criteria[1].id).is_final is True


class TestReviseScore:
    def test_revision_updates_score_and_appends_history(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)

        result = ReviseScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, reason="Reassessed after clarification",
            revised_by=reviewer_id, new_raw_score=6,
        )

        assert result.weighted_score == Decimal("1.80")
        score = ScoreReadService(db_session).get_score(proposal.id, criteria[0].id)
        assert score.raw_score == Decimal("6")
        assert db_session.query(ProposalScoreModel).count() == 1

        history = list(ScoreReadService(db_session).iter_score_history(proposal.id, criteria[0].id))
        assert len(history) == 1
        entry = history[0]
        assert entry.previous_raw_score == Decimal("8")
        assert entry.new_raw_score == Decimal("6")
        assert entry.previous_weighted_score == Decimal("2.40")
        assert entry.new_weighted_score == Decimal("1.80")
        assert entry.reason == "Reassessed after clarification"
        assert entry.revised_by == reviewer_id
        assert entry.proposal_score_id == score.id

    def test_reason_required(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        with pytest.raises(ScoringValidationError) as exc:
            ReviseScoreUseCase(db_session).execute(
                proposal.id, criteria[0].id, reason="   ", revised_by=reviewer_id, new_raw_score=6,
            )
        assert exc.value.kind == REASON_REQUIRED
        assert db_session.query(ProposalScoreHistoryModel).count() == 0
        assert ScoreReadService(db_session).get_score(proposal.id, criteria[0].id).raw_score == Decimal("8")

    def test_no_change_detected(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id, notes="ok")
        with pytest.raises(ScoringValidationError) as exc:
            ReviseScoreUseCase(db_session).execute(
                proposal.id, criteria[0].id, reason="Same", revised_by=reviewer_id,
                new_raw_score="8.00", new_notes=" ok ",
            )
        assert exc.value.kind == NO_CHANGE_DETECTED
        assert db_session.query(ProposalScoreHistoryModel).count() == 0

    def test_notes_only_revision(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        ReviseScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, reason="Added context", revised_by=reviewer_id,
            new_notes="Strong references",
        )

        entry = ScoreReadService(db_session).list_proposal_history(proposal.id)[0]
        assert entry.previous_raw_score == entry.new_raw_score == Decimal("8")
        assert entry.previous_notes is None
        assert entry.new_notes == "Strong references"

    def test_out_of_range_revision(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        with pytest.raises(ScoringValidationError) as exc:
            ReviseScoreUseCase(db_session).execute(
                proposal.id, criteria[0].id, reason="Typo", revised_by=reviewer_id, new_raw_score=12,
            )
        assert exc.value.kind == SCORE_OUT_OF_RANGE

    def test_revise_unscored_cell(self, db_session, proposal, criteria, reviewer_id):
        with pytest.raises(ScoringNotFoundError) as exc:
            ReviseScoreUseCase(db_session).execute(
                proposal.id, criteria[0].id, reason="Fix", revised_by=reviewer_id, new_raw_score=5,
            )
        assert exc.value.kind == NOT_FOUND

    def test_every_revision_is_kept_in_order(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[2].id, 5, reviewer_id)
        revise = ReviseScoreUseCase(db_session)
        for value in (6, 7, 9):
            revise.execute(proposal.id, criteria[2].id, reason=f"to {value}", revised_by=reviewer_id,
                           new_raw_score=value)

        history = list(ScoreReadService(db_session).iter_score_history(proposal.id, criteria[2].id))
        assert len(history) == 3
        assert [h.new_raw_score for h in history] == [Decimal("6"), Decimal("7"), Decimal("9")]
        assert [h.previous_raw_score for h in history] == [Decimal("5"), Decimal("6"), Decimal("7")]

    def test_history_iteration_is_restartable(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        ReviseScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, reason="first", revised_by=reviewer_id, new_raw_score=7,
        )
        reads = ScoreReadService(db_session)

        assert len(list(reads.iter_score_history(proposal.id, criteria[0].id))) == 1

        ReviseScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, reason="second", revised_by=reviewer_id, new_raw_score=6,
        )
        assert [h.reason for h in reads.iter_score_history(proposal.id, criteria[0].id)] == ["first", "second"]

    def test_revision_on_locked_proposal_warns(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)
        proposal.status = "rejected"
        db_session.commit()

        result = ReviseScoreUseCase(db_session).execute(
            proposal.id, criteria[0].id, reason="Post-decision review", revised_by=reviewer_id, new_raw_score=4,
        )
        assert result.locked_proposal_warning is True
        assert ScoreReadService(db_session).get_score(proposal.id, criteria[0].id).is_final is True

    def test_failed_history_insert_rolls_back_score(self, db_session, proposal, criteria, reviewer_id):
        SubmitScoreUseCase(db_session).execute(proposal.id, criteria[0].id, 8, reviewer_id)

        # revised_by is NOT NULL on the history table
        with pytest.raises(IntegrityError):
            ReviseScoreUseCase(db_session).execute(
                proposal.id, criteria[0].id, reason="Reassessed", revised_by=None, new_raw_score=6,
            )

        score = ScoreReadService(db_session).get_score(proposal.id, criteria[0].id)
        assert score.raw_score == Decimal("8")
        assert score.weighted_score == Decimal("2.40")
        assert score.scored_by == reviewer_id
        assert db_session.query(ProposalScoreHistoryModel).count() == 0


class TestFinalizeAndReads:
    def test_finalize_marks_all_scores(self, db_session, proposal, criteria, reviewer_id):
        submit = SubmitScoreUseCase(db_session)
        for criterion, value in zip(criteria, (8, 7, 6, 9)):
            submit.execute(proposal.id, criterion.id, value, reviewer_id)

        assert FinalizeScoringUseCase(db_session).execute(proposal.id) == 4
        assert all(s.is_final for s in ScoreReadService(db_session).list_scores(proposal.id))
        assert FinalizeScoringUseCase(db_session).execute(proposal.id) == 0

    def test_finalize_unknown_proposal(self, db_session):
        with pytest.raises(ScoringNotFoundError):
            FinalizeScoringUseCase(db_session).execute(404)

    def test_list_scores_in_criterion_order(self, db_session, proposal, criteria, reviewer_id):
        submit = SubmitScoreUseCase(db_session)
        submit.execute(proposal.id, criteria[3].id, 5, reviewer_id)
        submit.execute(proposal.id, criteria[0].id, 8, reviewer_id)

        scores = ScoreReadService(db_session).list_scores(proposal.id)
        assert [s.criterion_id for s in scores] == [criteria[0].id, criteria[3].id]
