from fastapi import APIRouter, Depends, HTTPException, status, Request
from typing import List
import logging
from sqlalchemy.orm import Session
from rq.exceptions import NoSuchJobError

from app.models.schemas import (
    Recommendation,
    JobStatus,
    SearchRequest,
    SearchResult,
    QueryRequest,
    QueryResponse,
)
from app.api.auth import get_current_user_id, limiter
from app.database.postgres_db import get_db as get_session
from app.services.ai_client import AzureChatService, get_chat_service
from app.services.embeddings import EmbeddingService, get_embedding_service
from app.services.job_queue import enqueue_recommendation_job, get_job_info
from app.services.query_assistant import QueryAssistant
from app.services.recommendation_agent import RecommendationAgent, recommendation_to_schema
from app.services.semantic_search import TransactionSearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/intelligence", tags=["intelligence"])


@router.get("/recommendations", response_model=List[Recommendation])
async def get_recommendations(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    chat_service: AzureChatService = Depends(get_chat_service)
):
    agent = RecommendationAgent(session, chat_service=chat_service)
    return [recommendation_to_schema(r) for r in agent.get_active_recommendations(user_id)]


@router.post("/recommendations/generate", status_code=status.HTTP_202_ACCEPTED)
@limiter.limit("5/minute")
async def generate_recommendations(
    request: Request,
    user_id: str = Depends(get_current_user_id)
):
    job = enqueue_recommendation_job(user_id)
    return {"job_id": job.id, "status": "queued"}


@router.post("/recommendations/{recommendation_id}/dismiss")
async def dismiss_recommendation(
    recommendation_id: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    chat_service: AzureChatService = Depends(get_chat_service)
):
    agent = RecommendationAgent(session, chat_service=chat_service)
    if not agent.dismiss_recommendation(user_id, recommendation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Recommendation not found"
        )
    return {"message": "Recommendation dismissed"}


@router.get("/jobs/{job_id}", response_model=JobStatus)
async def get_recommendation_job_status(
    job_id: str,
    user_id: str = Depends(get_current_user_id)
):
    try:
        info = get_job_info(job_id)
    except NoSuchJobError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    job_meta = info.get("meta") or {}
    if job_meta.get("user_id") != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )

    return info


@router.post("/search", response_model=List[SearchResult])
async def search_transactions(
    request: SearchRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    embedding_service: EmbeddingService = Depends(get_embedding_service)
):
    search_service = TransactionSearchService(session, embedding_service=embedding_service)
    try:
        transactions = search_service.search(user_id, request.query, max_results=request.max_results)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return [
        SearchResult(
            id=t.id,
            date=t.date,
            description=t.description,
            amount=t.amount,
            category=t.category,
            account=t.account,
        )
        for t in transactions
    ]


@router.post("/query", response_model=QueryResponse)
async def query_transactions(
    request: QueryRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    chat_service: AzureChatService = Depends(get_chat_service),
    embedding_service: EmbeddingService = Depends(get_embedding_service)
):
    assistant = QueryAssistant(
        session,
        chat_service=chat_service,
        search_service=TransactionSearchService(session, embedding_service=embedding_service),
    )
    try:
        return assistant.answer(user_id, request.question)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
