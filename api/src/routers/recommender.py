from __future__ import annotations


from fastapi import APIRouter, HTTPException, Request

from models.recommender import ErrorResponse, RecommendRequest, RecommendResponse

router = APIRouter(tags=["recommend"])


@router.post(
    "/reco",
    response_model=RecommendResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def recommend(request: Request, req: RecommendRequest):
    """Rank the caller's candidate items against the user/situation context."""
    service = getattr(request.app.state, "recommender_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Recommender service unavailable")
    ids = await service.recommend(req)
    return {"recommendations": ids}
