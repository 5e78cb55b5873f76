from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..deps import current_user_id, get_db
from ..schemas import MessageCreate

router = APIRouter()


@router.get("/matches/{match_id}/messages")
def get_messages(match_id: str, user_id: str = Depends(current_user_id), db=Depends(get_db)) -> dict[str, Any]:
    messages = repo.list_messages(db, match_id, user_id)
    if messages is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return {"messages": messages}


@router.post("/matches/{match_id}/messages")
def send_message(
    match_id: str,
    payload: MessageCreate,
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
) -> dict[str, Any]:
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Message content required")
    message = repo.post_message(db, match_id, user_id, payload.content)
    if message is None:
        raise HTTPException(status_code=404, detail="Active match not found")
    return {"message": message}
