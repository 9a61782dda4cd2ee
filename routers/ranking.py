from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dependencies import get_current_user, get_db
from points import find_user_rank, get_user_rankings
from schemas import RankingResponse, User

router = APIRouter(
    prefix="/ranking",
    tags=["ranking"]
)

TOP_N = 5


@router.get("", response_model=RankingResponse)
def read_ranking(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    rankings = get_user_rankings(db)
    own = next((r for r in rankings if r.username == user.username), None)
    return RankingResponse(
        rankings=rankings,
        top=rankings[:TOP_N],
        user_rank=find_user_rank(rankings, user.username),
        user_points=own.points if own else 0,
    )
