from datetime import datetime

from ..models import MatchStatus, UserState


def user_state_after_match_expiry(current: UserState) -> UserState:
    # Expiry wins over any freeze picked up while the match was active.
    return UserState.AVAILABLE


def next_user_state(current: UserState, action: str) -> UserState:
    if action == "complete_assessment":
        if current in {UserState.MATCHED, UserState.FROZEN}:
            return current
        return UserState.AVAILABLE

    if action == "match":
        if current == UserState.AVAILABLE:
            return UserState.MATCHED
        return current

    if action == "unpin":
        if current == UserState.MATCHED:
            return UserState.FROZEN
        return current

    if action == "partner_unpinned":
        if current == UserState.MATCHED:
            return UserState.AVAILABLE
        return current

    if action == "unfreeze":
        if current == UserState.FROZEN:
            return UserState.AVAILABLE
        return current

    if action == "match_expired":
        return user_state_after_match_expiry(current)

    return current


def next_match_status(current: MatchStatus, action: str, actor_slot: int | None, now: datetime, expires_at: datetime) -> MatchStatus:
    if current != MatchStatus.ACTIVE:
        return current

    if action == "unpin":
        if actor_slot == 1:
            return MatchStatus.UNPINNED_BY_USER1
        if actor_slot == 2:
            return MatchStatus.UNPINNED_BY_USER2
        return current

    if action == "expire":
        if now >= expires_at:
            return MatchStatus.EXPIRED
        return current

    return current
