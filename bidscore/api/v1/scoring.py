"""
Proposal scoring API endpoints
"""
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from bidscore.api.deps import get_db, get_current_user, can_manage_scoring, can_view_proposal_scores
from bidscore.application.proposal_scores import (
    SubmitScoreUseCase, ReviseScoreUseCase, FinalizeScoringUseCase, ScoreReadService,
)
from bidscore.application.rankings import ProposalRankingService, ScoringComparisonService
from bidscore.application.scoring_export import build_scoring_export
from bidscore.application.scoring_templates import (
    CreateScoringTemplateUseCase, ApplyDefaultTemplateUseCase, UpdateScoringCriteriaUseCase,
    UpdateScoringTemplateUseCase, DeleteScoringTemplateUseCase, ScoringTemplateReadService,
)
from bidscore.domain.scoring import (
    ScoringError, ScoringNotFoundError, ScoringValidationError, ScoreWriteResult, ProposalRanking,
    DUPLICATE_SCORE, TEMPLATE_EXISTS, TEMPLATE_LOCKED, NOT_FOUND, PROJECT_NOT_FOUND, EMPTY_TEMPLATE,
)
from bidscore.domain.scoring_presets import list_default_templates
from bidscore.infrastructure.db.models import (
    User, ProjectModel, ProposalModel, ScoringTemplateModel,
    ProposalScoreModel, ProposalScoreHistoryModel,
)


router = APIRouter(prefix="/api/v1/scoring", tags=["scoring"])

_CONFLICT_KINDS = {DUPLICATE_SCORE, TEMPLATE_EXISTS, TEMPLATE_LOCKED}


def error_status(exc: ScoringError) -> int:
    """HTTP status for a scoring error kind"""
    if isinstance(exc, ScoringNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if exc.kind in _CONFLICT_KINDS:
        return status.HTTP_409_CONFLICT
    return status.HTTP_422_UNPROCESSABLE_ENTITY


# === Request/Response models ===

class CriterionIn(BaseModel):
    name: str
    description: str | None = None
    weight: Decimal


class CreateTemplateRequest(BaseModel):
    name: str = "Scoring template"
    description: str | None = None
    criteria: list[CriterionIn]


class UpdateCriteriaRequest(BaseModel):
    criteria: list[CriterionIn]


class UpdateTemplateRequest(BaseModel):
    name: str | None = None
    description: str | None = None


class CriterionResponse(BaseModel):
    id: int
    name: str
    description: str | None
    weight: str  # Decimal as string
    order_index: int


class TemplateResponse(BaseModel):
    id: int
    project_id: int
    name: str
    description: str | None
    is_locked: bool
    criteria: list[CriterionResponse]


class SubmitScoreRequest(BaseModel):
    criterion_id: int
    raw_score: Decimal
    notes: str | None = None


class ReviseScoreRequest(BaseModel):
    reason: str
    new_raw_score: Decimal | None = None
    new_notes: str | None = None


class ScoreWriteResponse(BaseModel):
    score_id: int
    raw_score: str
    weighted_score: str
    locked_proposal_warning: bool


class ScoreResponse(BaseModel):
    id: int
    proposal_id: int
    criterion_id: int
    raw_score: str
    weighted_score: str
    notes: str | None
    scored_by: int
    scored_at: str
    is_final: bool


class ScoreHistoryResponse(BaseModel):
    id: int
    proposal_id: int
    criterion_id: int
    previous_raw_score: str
    new_raw_score: str
    previous_weighted_score: str
    new_weighted_score: str
    previous_notes: str | None
    new_notes: str | None
    reason: str
    revised_by: int
    revised_at: str


class RankingResponse(BaseModel):
    proposal_id: int
    total_weighted_score: str
    rank: int
    criteria_scored_count: int
    criteria_total_count: int
    is_fully_scored: bool


class BestWorstScore(BaseModel):
    criterion_id: int
    proposal_id: int
    score: str


class ComparedProposal(BaseModel):
    proposal_id: int
    scores: list[ScoreResponse]
    total_score: str
    rank: int
    is_fully_scored: bool


class ComparisonResponse(BaseModel):
    proposals: list[ComparedProposal]
    criteria: list[CriterionResponse]
    best_scores: list[BestWorstScore]
    worst_scores: list[BestWorstScore]


# === Helper functions ===

def _dec(value: Decimal) -> str:
    return f"{Decimal(value):.2f}"


def _authorize_project(db: Session, user: User, project_id: int) -> ProjectModel:
    project = db.query(ProjectModel).filter(ProjectModel.id == project_id).first()
    if not project:
        raise ScoringNotFoundError(PROJECT_NOT_FOUND, f"Project #{project_id} not found")
    if not can_manage_scoring(user, project):
        raise HTTPException(status_code=403, detail="Only the project owner can manage scoring")
    return project


def _authorize_proposal(db: Session, user: User, proposal_id: int) -> ProposalModel:
    proposal = db.query(ProposalModel).filter(ProposalModel.id == proposal_id).first()
    if not proposal:
        raise ScoringNotFoundError(NOT_FOUND, f"Proposal #{proposal_id} not found")
    _authorize_project(db, user, proposal.project_id)
    return proposal


def _authorize_proposal_read(db: Session, user: User, proposal_id: int) -> ProposalModel:
    """Like _authorize_proposal, but also lets the proposal's own lead through"""
    proposal = db.query(ProposalModel).filter(ProposalModel.id == proposal_id).first()
    if not proposal:
        raise ScoringNotFoundError(NOT_FOUND, f"Proposal #{proposal_id} not found")
    if not can_view_proposal_scores(user, proposal):
        raise HTTPException(status_code=403, detail="You cannot view scores of this proposal")
    return proposal


def _authorize_template(db: Session, user: User, template_id: int) -> ScoringTemplateModel:
    template = ScoringTemplateReadService(db).get_template(template_id)
    _authorize_project(db, user, template.project_id)
    return template


def _criterion_response(c) -> CriterionResponse:
    return CriterionResponse(
        id=c.id,
        name=c.name,
        description=c.description,
        weight=_dec(c.weight),
        order_index=c.order_index,
    )


def _template_response(db: Session, template: ScoringTemplateModel) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        project_id=template.project_id,
        name=template.name,
        description=template.description,
        is_locked=ScoringTemplateReadService(db).is_locked(template.id),
        criteria=[_criterion_response(c) for c in template.criteria],
    )


def _score_response(s: ProposalScoreModel) -> ScoreResponse:
    return ScoreResponse(
        id=s.id,
        proposal_id=s.proposal_id,
        criterion_id=s.criterion_id,
        raw_score=_dec(s.raw_score),
        weighted_score=_dec(s.weighted_score),
        notes=s.notes,
        scored_by=s.scored_by,
        scored_at=s.scored_at.isoformat(),
        is_final=s.is_final,
    )


def _history_response(h: ProposalScoreHistoryModel) -> ScoreHistoryResponse:
    return ScoreHistoryResponse(
        id=h.id,
        proposal_id=h.proposal_id,
        criterion_id=h.criterion_id,
        previous_raw_score=_dec(h.previous_raw_score),
        new_raw_score=_dec(h.new_raw_score),
        previous_weighted_score=_dec(h.previous_weighted_score),
        new_weighted_score=_dec(h.new_weighted_score),
        previous_notes=h.previous_notes,
        new_notes=h.new_notes,
        reason=h.reason,
        revised_by=h.revised_by,
        revised_at=h.revised_at.isoformat(),
    )


def _ranking_response(r: ProposalRanking) -> RankingResponse:
    return RankingResponse(
        proposal_id=r.proposal_id,
        total_weighted_score=_dec(r.total_weighted_score),
        rank=r.rank,
        criteria_scored_count=r.criteria_scored_count,
        criteria_total_count=r.criteria_total_count,
        is_fully_scored=r.is_fully_scored,
    )


def _write_response(result: ScoreWriteResult) -> ScoreWriteResponse:
    return ScoreWriteResponse(
        score_id=result.score_id,
        raw_score=_dec(result.raw_score),
        weighted_score=_dec(result.weighted_score),
        locked_proposal_warning=result.locked_proposal_warning,
    )


def _criteria_payload(criteria: list[CriterionIn]) -> list[dict[str, Any]]:
    return [c.model_dump() for c in criteria]


# === Templates ===

@router.get("/templates/defaults")
def get_default_templates(user: User = Depends(get_current_user)):
    """Preset templates a client can start from"""
    return list_default_templates()


@router.post("/projects/{project_id}/template", response_model=TemplateResponse, status_code=201)
def create_template(
    project_id: int,
    req: CreateTemplateRequest | None = None,
    preset: str | None = Query(None, description="Create from a default template instead of a body"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create the scoring template of a project, from a body or a preset"""
    _authorize_project(db, user, project_id)
    if preset:
        template_id = ApplyDefaultTemplateUseCase(db).execute(project_id, preset, created_by=user.id)
    elif req is None:
        raise ScoringValidationError(EMPTY_TEMPLATE, "Template must have at least one criterion")
    else:
        template_id = CreateScoringTemplateUseCase(db).execute(
            project_id=project_id,
            criteria=_criteria_payload(req.criteria),
            name=req.name,
            description=req.description,
            created_by=user.id,
        )
    template = ScoringTemplateReadService(db).get_template(template_id)
    return _template_response(db, template)


@router.get("/projects/{project_id}/template", response_model=TemplateResponse)
def get_project_template(
    project_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_project(db, user, project_id)
    template = ScoringTemplateReadService(db).get_template_for_project(project_id)
    if not template:
        raise ScoringNotFoundError(NOT_FOUND, "This project has no scoring template yet")
    return _template_response(db, template)


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(
    template_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    template = _authorize_template(db, user, template_id)
    return _template_response(db, template)


@router.put("/templates/{template_id}/criteria", response_model=TemplateResponse)
def update_criteria(
    template_id: int,
    req: UpdateCriteriaRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Replace criteria of a template that has not been used for scoring yet"""
    _authorize_template(db, user, template_id)
    UpdateScoringCriteriaUseCase(db).execute(template_id, _criteria_payload(req.criteria))
    template = ScoringTemplateReadService(db).get_template(template_id)
    return _template_response(db, template)


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
def update_template(
    template_id: int,
    req: UpdateTemplateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_template(db, user, template_id)
    UpdateScoringTemplateUseCase(db).execute(template_id, **req.model_dump(exclude_unset=True))
    template = ScoringTemplateReadService(db).get_template(template_id)
    return _template_response(db, template)


@router.delete("/templates/{template_id}")
def delete_template(
    template_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_template(db, user, template_id)
    DeleteScoringTemplateUseCase(db).execute(template_id)
    return {"status": "deleted"}


# === Scores ===

@router.post("/proposals/{proposal_id}/scores", response_model=ScoreWriteResponse, status_code=201)
def submit_score(
    proposal_id: int,
    req: SubmitScoreRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Score one criterion of a proposal for the first time"""
    _authorize_proposal(db, user, proposal_id)
    result = SubmitScoreUseCase(db).execute(
        proposal_id=proposal_id,
        criterion_id=req.criterion_id,
        raw_score=req.raw_score,
        scored_by=user.id,
        notes=req.notes,
    )
    return _write_response(result)


@router.put("/proposals/{proposal_id}/scores/{criterion_id}", response_model=ScoreWriteResponse)
def revise_score(
    proposal_id: int,
    criterion_id: int,
    req: ReviseScoreRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revise an existing score; a reason is mandatory"""
    _authorize_proposal(db, user, proposal_id)
    result = ReviseScoreUseCase(db).execute(
        proposal_id=proposal_id,
        criterion_id=criterion_id,
        reason=req.reason,
        revised_by=user.id,
        new_raw_score=req.new_raw_score,
        new_notes=req.new_notes,
    )
    return _write_response(result)


@router.get("/proposals/{proposal_id}/scores", response_model=list[ScoreResponse])
def list_scores(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_proposal_read(db, user, proposal_id)
    return [_score_response(s) for s in ScoreReadService(db).list_scores(proposal_id)]


@router.get("/proposals/{proposal_id}/ranking", response_model=RankingResponse)
def proposal_ranking(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Total and rank of one proposal within its project"""
    proposal = _authorize_proposal_read(db, user, proposal_id)
    rankings = ProposalRankingService(db).calculate(proposal.project_id)
    return next(_ranking_response(r) for r in rankings if r.proposal_id == proposal_id)


@router.get(
    "/proposals/{proposal_id}/scores/{criterion_id}/history",
    response_model=list[ScoreHistoryResponse],
)
def score_history(
    proposal_id: int,
    criterion_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revisions of one score, oldest first"""
    _authorize_proposal(db, user, proposal_id)
    history = ScoreReadService(db).iter_score_history(proposal_id, criterion_id)
    return [_history_response(h) for h in history]


@router.get("/proposals/{proposal_id}/history", response_model=list[ScoreHistoryResponse])
def proposal_history(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_proposal(db, user, proposal_id)
    return [_history_response(h) for h in ScoreReadService(db).list_proposal_history(proposal_id)]


@router.post("/proposals/{proposal_id}/finalize")
def finalize_scoring(
    proposal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _authorize_proposal(db, user, proposal_id)
    finalized = FinalizeScoringUseCase(db).execute(proposal_id)
    return {"status": "finalized", "finalized_count": finalized}


# === Rankings ===

@router.get("/projects/{project_id}/rankings", response_model=list[RankingResponse])
def project_rankings(
    project_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Proposals of a project ranked by total weighted score"""
    _authorize_project(db, user, project_id)
    return [_ranking_response(r) for r in ProposalRankingService(db).calculate(project_id)]


@router.get("/projects/{project_id}/comparison", response_model=ComparisonResponse)
def compare_proposals(
    project_id: int,
    proposal_ids: list[int] = Query(...),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Side-by-side scores of 2-4 proposals"""
    _authorize_project(db, user, project_id)
    comparison = ScoringComparisonService(db).compare(project_id, proposal_ids)
    return ComparisonResponse(
        proposals=[
            ComparedProposal(
                proposal_id=p["proposal_id"],
                scores=[_score_response(s) for s in p["scores"]],
                total_score=_dec(p["total_score"]),
                rank=p["rank"],
                is_fully_scored=p["is_fully_scored"],
            )
            for p in comparison["proposals"]
        ],
        criteria=[_criterion_response(c) for c in comparison["criteria"]],
        best_scores=[
            BestWorstScore(criterion_id=b["criterion_id"], proposal_id=b["proposal_id"], score=_dec(b["score"]))
            for b in comparison["best_scores"]
        ],
        worst_scores=[
            BestWorstScore(criterion_id=w["criterion_id"], proposal_id=w["proposal_id"], score=_dec(w["score"]))
            for w in comparison["worst_scores"]
        ],
    )


@router.get("/projects/{project_id}/export")
def export_scoring(
    project_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """JSON payload for scoring reports"""
    _authorize_project(db, user, project_id)
    return build_scoring_export(db, project_id)
