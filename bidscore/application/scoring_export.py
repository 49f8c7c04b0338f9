"""
Scoring export payload.

Builds the JSON-ready structure handed to the reporting side (PDF/JSON
rendering and file storage happen there). Decimals become "0.00" strings,
timestamps ISO-8601.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from bidscore.application.proposal_scores import ScoreReadService
from bidscore.application.rankings import ProposalRankingService, project_criteria
from bidscore.application.scoring_templates import ScoringTemplateReadService
from bidscore.infrastructure.db.models import ProjectModel, ProposalModel


def _money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def build_scoring_export(db: Session, project_id: int) -> dict[str, Any]:
    """
    Template, rankings with per-criterion scores, and revision history
    for one project.

    Raises:
        ScoringNotFoundError: ProjectNotFound
    """
    rankings = ProposalRankingService(db).calculate(project_id)
    project = db.query(ProjectModel).filter(ProjectModel.id == project_id).one()
    template = ScoringTemplateReadService(db).get_template_for_project(project_id)
    criteria = project_criteria(db, project_id)
    criterion_names = {c.id: c.name for c in criteria}

    proposals = {
        p.id: p for p in db.query(ProposalModel).filter(ProposalModel.project_id == project_id)
    }
    scores_service = ScoreReadService(db)

    ranking_rows = []
    history_rows = []
    for ranking in rankings:
        proposal = proposals[ranking.proposal_id]
        ranking_rows.append({
            "proposal_id": proposal.id,
            "proposal_title": proposal.title,
            "status": proposal.status,
            "rank": ranking.rank,
            "total_score": _money(ranking.total_weighted_score),
            "criteria_scored": ranking.criteria_scored_count,
            "criteria_total": ranking.criteria_total_count,
            "is_fully_scored": ranking.is_fully_scored,
            "scores": [
                {
                    "criterion_id": s.criterion_id,
                    "criterion_name": criterion_names.get(s.criterion_id),
                    "raw_score": _money(s.raw_score),
                    "weighted_score": _money(s.weighted_score),
                    "notes": s.notes,
                    "scored_by": s.scored_by,
                    "scored_at": _iso(s.scored_at),
                    "is_final": s.is_final,
                }
                for s in scores_service.list_scores(proposal.id)
            ],
        })
        for h in scores_service.list_proposal_history(proposal.id):
            history_rows.append({
                "proposal_id": h.proposal_id,
                "criterion_id": h.criterion_id,
                "criterion_name": criterion_names.get(h.criterion_id),
                "previous_raw_score": _money(h.previous_raw_score),
                "new_raw_score": _money(h.new_raw_score),
                "previous_weighted_score": _money(h.previous_weighted_score),
                "new_weighted_score": _money(h.new_weighted_score),
                "previous_notes": h.previous_notes,
                "new_notes": h.new_notes,
                "reason": h.reason,
                "revised_by": h.revised_by,
                "revised_at": _iso(h.revised_at),
            })

    return {
        "project": {"id": project.id, "title": project.title, "status": project.status},
        "template": {
            "id": template.id,
            "name": template.name,
            "description": template.description,
            "criteria": [
                {
                    "id": c.id,
                    "name": c.name,
                    "description": c.description,
                    "weight": _money(c.weight),
                    "order_index": c.order_index,
                }
                for c in criteria
            ],
        } if template else None,
        "rankings": ranking_rows,
        "history": history_rows,
        "export_date": datetime.now(timezone.utc).isoformat(),
    }
