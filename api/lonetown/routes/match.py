from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from .. import repo
from ..deps import current_user_id, get_db
from ..schemas import AssessmentRequest, AssessmentResponse, StatusResponse, UnpinRequest, UserStateResponse
from ..services.jobs import cleanup_expired_states, process_daily_matches
from ..services.matching import complete_assessment, generate_match_for_user, unpin_match

router = APIRouter()


@router.post("/assessment", response_model=AssessmentResponse)
def submit_assessment(
    payload: AssessmentRequest,
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
) -> dict[str, Any]:
    user = complete_assessment(db, user_id, payload.model_dump())
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"message": "Assessment completed successfully", "user": {"id": user.id, "state": user.state.value}}


@router.get("/user/state", response_model=UserStateResponse)
def get_user_state(user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    state = repo.get_user_state(db, user_id)
    if state is None:
        raise HTTPException(status_code=404, detail="User not found")
    return state


@router.get("/matches/current")
def get_current_match(user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    return {"match": repo.get_current_match(db, user_id)}


@router.post("/matches/generate", response_model=StatusResponse)
def run_daily_matches(user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    summary = process_daily_matches(db)
    return {"message": f"Daily matches processed ({summary['matched']} created)"}


@router.get("/matches/generate", response_model=StatusResponse)
def generate_for_current_user(user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    created = generate_match_for_user(db, user_id)
    return {"message": "Match created" if created else "No match available right now"}


@router.post("/matches/unpin", response_model=StatusResponse)
def unpin_current_match(
    payload: UnpinRequest,
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
) -> dict[str, Any]:
    if not unpin_match(db, payload.match_id, user_id):
        raise HTTPException(status_code=400, detail="Failed to unpin match")
    return {"message": "Match unpinned successfully"}


@router.get("/matches/feedback")
def list_match_feedback(
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
) -> dict[str, Any]:
    return {"feedback": repo.list_feedback(db, user_id, limit=limit)}


@router.post("/jobs/cleanup")
def run_cleanup(user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    summary = cleanup_expired_states(db)
    return {"unfrozen": summary["unfrozen"], "expired": summary["expired"], "failed": len(summary["failed"])}
