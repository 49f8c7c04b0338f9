"""
Tests for scoring template use-cases and ScoringTemplateReadService.
"""
from decimal import Decimal

import pytest

from bidscore.application.scoring_templates import (
    CreateScoringTemplateUseCase, ApplyDefaultTemplateUseCase, UpdateScoringCriteriaUseCase,
    UpdateScoringTemplateUseCase, DeleteScoringTemplateUseCase,
    ScoringTemplateReadService,
)
from bidscore.application.proposal_scores import SubmitScoreUseCase
from bidscore.domain.scoring import (
    ScoringValidationError, ScoringNotFoundError,
    EMPTY_TEMPLATE, INVALID_TEMPLATE, INVALID_WEIGHT_SUM, TEMPLATE_EXISTS, TEMPLATE_LOCKED,
    NOT_FOUND, PROJECT_NOT_FOUND,
)
from bidscore.infrastructure.db.models import ScoringCriterionModel, ScoringTemplateModel


def _create(db, project_id, criteria, **kwargs) -> int:
    return CreateScoringTemplateUseCase(db).execute(project_id=project_id, criteria=criteria, **kwargs)


class TestCreateTemplate:
    def test_creates_template_with_ordered_criteria(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria, name="Renovation bids", created_by=1)

        template = ScoringTemplateReadService(db_session).get_template(template_id)
        assert template.project_id == project.id
        assert template.name == "Renovation bids"
        assert template.created_by == 1
        assert [c.name for c in template.criteria] == ["Technical", "Budget", "Timeline", "Team"]
        assert [c.order_index for c in template.criteria] == [0, 1, 2, 3]
        assert template.criteria[0].weight == Decimal("30")

    def test_empty_criteria_rejected(self, db_session, project):
        with pytest.raises(ScoringValidationError) as exc:
            _create(db_session, project.id, [])
        assert exc.value.kind == EMPTY_TEMPLATE
        assert db_session.query(ScoringTemplateModel).count() == 0

    @pytest.mark.parametrize("weights", [(50, 49), (50, 51)])
    def test_weight_sum_must_be_100(self, db_session, project, weights):
        criteria = [{"name": "A", "weight": weights[0]}, {"name": "B", "weight": weights[1]}]
        with pytest.raises(ScoringValidationError) as exc:
            _create(db_session, project.id, criteria)
        assert exc.value.kind == INVALID_WEIGHT_SUM
        assert db_session.query(ScoringCriterionModel).count() == 0

    def test_second_template_for_project_rejected(self, db_session, project, standard_criteria):
        _create(db_session, project.id, standard_criteria)
        with pytest.raises(ScoringValidationError) as exc:
            _create(db_session, project.id, standard_criteria)
        assert exc.value.kind == TEMPLATE_EXISTS

    def test_unknown_project(self, db_session, standard_criteria):
        with pytest.raises(ScoringNotFoundError) as exc:
            _create(db_session, 999, standard_criteria)
        assert exc.value.kind == PROJECT_NOT_FOUND

    def test_blank_description_stored_as_null(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria, description="   ")
        assert ScoringTemplateReadService(db_session).get_template(template_id).description is None


class TestUpdateTemplate:
    def test_replace_criteria_before_scoring(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria)

        UpdateScoringCriteriaUseCase(db_session).execute(template_id, [
            {"name": "Quality", "weight": 60},
            {"name": "Price", "weight": 40},
        ])

        criteria = ScoringTemplateReadService(db_session).list_criteria(template_id)
        assert [(c.name, c.weight, c.order_index) for c in criteria] == [
            ("Quality", Decimal("60"), 0),
            ("Price", Decimal("40"), 1),
        ]
        assert db_session.query(ScoringCriterionModel).count() == 2

    def test_replace_validates_weights(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria)
        with pytest.raises(ScoringValidationError) as exc:
            UpdateScoringCriteriaUseCase(db_session).execute(template_id, [{"name": "Only", "weight": 90}])
        assert exc.value.kind == INVALID_WEIGHT_SUM
        assert len(ScoringTemplateReadService(db_session).list_criteria(template_id)) == 4

    def test_locked_once_scored(self, db_session, project, standard_criteria, make_proposal, reviewer_id):
        template_id = _create(db_session, project.id, standard_criteria)
        proposal = make_proposal("Acme")
        criterion = ScoringTemplateReadService(db_session).list_criteria(template_id)[0]
        SubmitScoreUseCase(db_session).execute(proposal.id, criterion.id, 8, reviewer_id)

        reads = ScoringTemplateReadService(db_session)
        assert reads.is_locked(template_id) is True

        with pytest.raises(ScoringValidationError) as exc:
            UpdateScoringCriteriaUseCase(db_session).execute(template_id, [{"name": "X", "weight": 100}])
        assert exc.value.kind == TEMPLATE_LOCKED

        with pytest.raises(ScoringValidationError) as exc:
            DeleteScoringTemplateUseCase(db_session).execute(template_id)
        assert exc.value.kind == TEMPLATE_LOCKED

    def test_metadata_editable_when_locked(self, db_session, project, standard_criteria, make_proposal, reviewer_id):
        template_id = _create(db_session, project.id, standard_criteria)
        proposal = make_proposal("Acme")
        criterion = ScoringTemplateReadService(db_session).list_criteria(template_id)[0]
        SubmitScoreUseCase(db_session).execute(proposal.id, criterion.id, 8, reviewer_id)

        UpdateScoringTemplateUseCase(db_session).execute(template_id, name="Final rubric", description="v2")

        template = ScoringTemplateReadService(db_session).get_template(template_id)
        assert template.name == "Final rubric"
        assert template.description == "v2"

    def test_not_locked_without_scores(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria)
        assert ScoringTemplateReadService(db_session).is_locked(template_id) is False


class TestDeleteTemplate:
    def test_delete_removes_criteria(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria)
        DeleteScoringTemplateUseCase(db_session).execute(template_id)

        assert db_session.query(ScoringTemplateModel).count() == 0
        assert db_session.query(ScoringCriterionModel).count() == 0
        assert ScoringTemplateReadService(db_session).get_template_for_project(project.id) is None

    def test_project_can_get_new_template_after_delete(self, db_session, project, standard_criteria):
        template_id = _create(db_session, project.id, standard_criteria)
        DeleteScoringTemplateUseCase(db_session).execute(template_id)
        assert _create(db_session, project.id, standard_criteria) != 0


class TestTemplateReads:
    def test_get_unknown_template(self, db_session):
        with pytest.raises(ScoringNotFoundError) as exc:
            ScoringTemplateReadService(db_session).get_template(42)
        assert exc.value.kind == NOT_FOUND

    def test_get_for_project_without_template(self, db_session, project):
        assert ScoringTemplateReadService(db_session).get_template_for_project(project.id) is None


class TestApplyDefaultTemplate:
    def test_preset_applied_by_name(self, db_session, project):
        template_id = ApplyDefaultTemplateUseCase(db_session).execute(project.id, "financial", created_by=1)

        template = ScoringTemplateReadService(db_session).get_template(template_id)
        assert template.name == "Financial"
        assert template.description == "Focus on budget and cost considerations"
        assert [c.name for c in template.criteria][0] == "Budget Competitiveness"
        assert sum(c.weight for c in template.criteria) == Decimal("100")

    def test_unknown_preset(self, db_session, project):
        with pytest.raises(ScoringValidationError) as exc:
            ApplyDefaultTemplateUseCase(db_session).execute(project.id, "Exotic")
        assert exc.value.kind == INVALID_TEMPLATE
        assert db_session.query(ScoringTemplateModel).count() == 0

    def test_preset_respects_one_template_per_project(self, db_session, project, standard_criteria):
        _create(db_session, project.id, standard_criteria)
        with pytest.raises(ScoringValidationError) as exc:
            ApplyDefaultTemplateUseCase(db_session).execute(project.id, "Balanced")
        assert exc.value.kind == TEMPLATE_EXISTS
