from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.models.schemas import BudgetInsights
from app.api.auth import get_current_user_id
from app.database.postgres_db import get_db as get_session
from app.services.ai_client import AzureChatService, get_chat_service
from app.services.insights import InsightsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/insights", response_model=BudgetInsights)
async def get_budget_insights(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    chat_service: AzureChatService = Depends(get_chat_service)
):
    return InsightsService(session, chat_service=chat_service).get_insights(user_id)
