"""
Ranking calculator and side-by-side scoring comparison.

Rankings are derived on every call from the current proposal_scores rows;
nothing is cached, so a revision is visible to the very next request.
"""
from collections import defaultdict
from typing import Any

from sqlalchemy.orm import Session

from bidscore.domain.scoring import (
    ProposalRanking, ScoringNotFoundError, ScoringValidationError,
    assign_competition_ranks, calculate_total_score, validate_comparison_selection,
    PROJECT_NOT_FOUND, INVALID_COMPARISON,
)
from bidscore.infrastructure.db.models import (
    ProjectModel, ProposalModel, ScoringTemplateModel, ScoringCriterionModel, ProposalScoreModel,
)


def project_criteria(db: Session, project_id: int) -> list[ScoringCriterionModel]:
    """Criteria of the project's template in display order (empty if no template)."""
    return db.query(ScoringCriterionModel).join(
        ScoringTemplateModel, ScoringTemplateModel.id == ScoringCriterionModel.template_id,
    ).filter(
        ScoringTemplateModel.project_id == project_id,
    ).order_by(ScoringCriterionModel.order_index).all()


def scores_by_proposal(
    db: Session, proposal_ids: list[int], criterion_ids: list[int],
) -> dict[int, list[ProposalScoreModel]]:
    grouped: dict[int, list[ProposalScoreModel]] = defaultdict(list)
    if not proposal_ids or not criterion_ids:
        return grouped
    rows = db.query(ProposalScoreModel).filter(
        ProposalScoreModel.proposal_id.in_(proposal_ids),
        ProposalScoreModel.criterion_id.in_(criterion_ids),
    ).all()
    for row in rows:
        grouped[row.proposal_id].append(row)
    return grouped


class ProposalRankingService:
    def __init__(self, db: Session):
        self.db = db

    def calculate(self, project_id: int) -> list[ProposalRanking]:
        """
        Rank every proposal of a project by total weighted score.

        Unscored criteria contribute 0. Equal totals share a rank and the
        next distinct total skips ahead (competition ranking). Within a tie,
        rows are listed by submission time, then id.

        Raises:
            ScoringNotFoundError: ProjectNotFound
        """
        project = self.db.query(ProjectModel).filter(ProjectModel.id == project_id).first()
        if not project:
            raise ScoringNotFoundError(PROJECT_NOT_FOUND, f"Project #{project_id} not found")

        proposals = self.db.query(ProposalModel).filter(
            ProposalModel.project_id == project_id,
        ).all()
        if not proposals:
            return []

        criteria = project_criteria(self.db, project_id)
        scores = scores_by_proposal(
            self.db, [p.id for p in proposals], [c.id for c in criteria],
        )

        rows = []
        for proposal in proposals:
            proposal_scores = scores.get(proposal.id, [])
            total = calculate_total_score(s.weighted_score for s in proposal_scores)
            rows.append((proposal, total, len(proposal_scores)))

        rows.sort(key=lambda r: (-r[1], r[0].submitted_at or r[0].created_at, r[0].id))
        ranks = assign_competition_ranks([total for _, total, _ in rows])

        return [
            ProposalRanking(
                proposal_id=proposal.id,
                total_weighted_score=total,
                rank=rank,
                criteria_scored_count=scored_count,
                criteria_total_count=len(criteria),
            )
            for (proposal, total, scored_count), rank in zip(rows, ranks)
        ]


class ScoringComparisonService:
    """Side-by-side scores for 2-4 proposals of the same project."""

    def __init__(self, db: Session):
        self.db = db

    def compare(self, project_id: int, proposal_ids: list[int]) -> dict[str, Any]:
        validate_comparison_selection(proposal_ids)

        rankings = {r.proposal_id: r for r in ProposalRankingService(self.db).calculate(project_id)}
        foreign = [pid for pid in proposal_ids if pid not in rankings]
        if foreign:
            raise ScoringValidationError(
                INVALID_COMPARISON,
                f"Proposal #{foreign[0]} does not belong to project #{project_id}",
            )

        criteria = project_criteria(self.db, project_id)
        scores = scores_by_proposal(self.db, proposal_ids, [c.id for c in criteria])

        proposals = []
        for pid in proposal_ids:
            ranking = rankings[pid]
            by_criterion = {s.criterion_id: s for s in scores.get(pid, [])}
            proposals.append({
                "proposal_id": pid,
                "scores": [by_criterion[c.id] for c in criteria if c.id in by_criterion],
                "total_score": ranking.total_weighted_score,
                "rank": ranking.rank,
                "is_fully_scored": ranking.is_fully_scored,
            })

        # Ties go to the proposal listed first in the selection
        best_scores = []
        worst_scores = []
        for criterion in criteria:
            cells = [
                (s.raw_score, pid)
                for pid in proposal_ids
                for s in scores.get(pid, [])
                if s.criterion_id == criterion.id
            ]
            if not cells:
                continue
            best = max(cells, key=lambda c: c[0])
            worst = min(cells, key=lambda c: c[0])
            best_scores.append({"criterion_id": criterion.id, "proposal_id": best[1], "score": best[0]})
            worst_scores.append({"criterion_id": criterion.id, "proposal_id": worst[1], "score": worst[0]})

        return {
            "proposals": proposals,
            "criteria": criteria,
            "best_scores": best_scores,
            "worst_scores": worst_scores,
        }
