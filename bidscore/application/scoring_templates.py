"""
Scoring template use-cases and read service.

A template is a named set of weighted criteria attached to one project.
Criteria can be replaced freely until the first score references them;
after that the template is locked so historical weighted scores stay
comparable.
"""
import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from bidscore.config import get_settings
from bidscore.domain.scoring import (
    ScoringValidationError, ScoringNotFoundError,
    validate_criteria, validate_template_name, validate_template_description,
    NOT_FOUND, PROJECT_NOT_FOUND, TEMPLATE_EXISTS, TEMPLATE_LOCKED, INVALID_TEMPLATE,
)
from bidscore.domain.scoring_presets import get_default_template
from bidscore.infrastructure.db.models import (
    ProjectModel, ScoringTemplateModel, ScoringCriterionModel, ProposalScoreModel,
)


logger = logging.getLogger(__name__)


def _weight_tolerance() -> Decimal:
    return Decimal(str(get_settings().WEIGHT_SUM_TOLERANCE))


def _get_template(db: Session, template_id: int) -> ScoringTemplateModel:
    template = db.query(ScoringTemplateModel).filter(
        ScoringTemplateModel.id == template_id,
    ).first()
    if not template:
        raise ScoringNotFoundError(NOT_FOUND, f"Scoring template #{template_id} not found")
    return template


def template_has_scores(db: Session, template_id: int) -> bool:
    """True once any ProposalScore references one of the template's criteria."""
    return db.query(ProposalScoreModel.id).join(
        ScoringCriterionModel, ScoringCriterionModel.id == ProposalScoreModel.criterion_id,
    ).filter(
        ScoringCriterionModel.template_id == template_id,
    ).first() is not None


def _ensure_unlocked(db: Session, template_id: int) -> None:
    if template_has_scores(db, template_id):
        raise ScoringValidationError(
            TEMPLATE_LOCKED,
            "Scoring template is locked: proposals have already been scored against it",
        )


def _build_criteria(template_id: int, criteria: list[dict[str, Any]]) -> list[ScoringCriterionModel]:
    return [
        ScoringCriterionModel(
            template_id=template_id,
            name=c["name"],
            description=c["description"],
            weight=c["weight"],
            order_index=c["order_index"],
        )
        for c in criteria
    ]


# ── Use Cases ──

class CreateScoringTemplateUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        project_id: int,
        criteria: list[dict[str, Any]],
        name: str = "Scoring template",
        description: str | None = None,
        created_by: int | None = None,
    ) -> int:
        project = self.db.query(ProjectModel).filter(ProjectModel.id == project_id).first()
        if not project:
            raise ScoringNotFoundError(PROJECT_NOT_FOUND, f"Project #{project_id} not found")

        existing = self.db.query(ScoringTemplateModel.id).filter(
            ScoringTemplateModel.project_id == project_id,
        ).first()
        if existing:
            raise ScoringValidationError(
                TEMPLATE_EXISTS, "This project already has a scoring template"
            )

        name = validate_template_name(name)
        description = validate_template_description(description)
        normalized = validate_criteria(criteria, _weight_tolerance())

        template = ScoringTemplateModel(
            project_id=project_id,
            name=name,
            description=description,
            created_by=created_by,
        )
        self.db.add(template)
        self.db.flush()
        self.db.add_all(_build_criteria(template.id, normalized))
        self.db.commit()

        logger.info(
            "Scoring template %d created for project %d with %d criteria",
            template.id, project_id, len(normalized),
        )
        return template.id


class ApplyDefaultTemplateUseCase:
    """Create a project's template from one of the built-in presets."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, project_id: int, preset_name: str, created_by: int | None = None) -> int:
        preset = get_default_template(preset_name or "")
        if preset is None:
            raise ScoringValidationError(INVALID_TEMPLATE, f"Unknown default template '{preset_name}'")

        return CreateScoringTemplateUseCase(self.db).execute(
            project_id=project_id,
            criteria=preset["criteria"],
            name=preset["name"],
            description=preset["description"],
            created_by=created_by,
        )


class UpdateScoringCriteriaUseCase:
    """Replace the whole criteria set of an unlocked template."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: int, criteria: list[dict[str, Any]]) -> None:
        template = _get_template(self.db, template_id)
        _ensure_unlocked(self.db, template_id)
        normalized = validate_criteria(criteria, _weight_tolerance())

        template.criteria.clear()
        # Old rows must be gone before new ones reuse their order_index values
        self.db.flush()
        template.criteria.extend(_build_criteria(template_id, normalized))
        self.db.commit()

        logger.info("Scoring template %d criteria replaced (%d criteria)", template_id, len(normalized))


class UpdateScoringTemplateUseCase:
    """Edit template name/description; allowed even when locked."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: int, **changes) -> None:
        template = _get_template(self.db, template_id)

        if "name" in changes:
            template.name = validate_template_name(changes["name"])
        if "description" in changes:
            template.description = validate_template_description(changes["description"])

        self.db.commit()


class DeleteScoringTemplateUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, template_id: int) -> None:
        template = _get_template(self.db, template_id)
        _ensure_unlocked(self.db, template_id)

        self.db.delete(template)
        self.db.commit()
        logger.info("Scoring template %d deleted", template_id)


# ── Read Service ──

class ScoringTemplateReadService:
    """Read-only queries for scoring templates."""

    def __init__(self, db: Session):
        self.db = db

    def get_template(self, template_id: int) -> ScoringTemplateModel:
        """Template with criteria ordered by order_index; NotFound if unknown."""
        return _get_template(self.db, template_id)

    def get_template_for_project(self, project_id: int) -> ScoringTemplateModel | None:
        return self.db.query(ScoringTemplateModel).filter(
            ScoringTemplateModel.project_id == project_id,
        ).first()

    def list_criteria(self, template_id: int) -> list[ScoringCriterionModel]:
        _get_template(self.db, template_id)
        return self.db.query(ScoringCriterionModel).filter(
            ScoringCriterionModel.template_id == template_id,
        ).order_by(ScoringCriterionModel.order_index).all()

    def is_locked(self, template_id: int) -> bool:
        _get_template(self.db, template_id)
        return template_has_scores(self.db, template_id)
