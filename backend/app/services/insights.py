"""
Budget Insights Service

Summarizes the last 30 days as a needs / wants / savings breakdown. The
numbers are computed locally; the chat model only classifies categories and
writes the summary and health assessment.
"""

import json
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.database.models import Transaction
from app.models.schemas import BudgetBreakdown, BudgetHealth, BudgetInsights
from app.services.ai_client import AzureChatService, extract_json_from_code_block, get_chat_service

logger = logging.getLogger(__name__)

INSIGHTS_WINDOW_DAYS = 30
UNCATEGORIZED = "Uncategorized"

SYSTEM_PROMPT = """You are a personal budgeting assistant using the 50/30/20 rule (50% needs, 30% wants, 20% savings).

Given a user's income, expenses and spending per category for the last 30 days:
1. Classify each category as a "need" (housing, groceries, utilities, insurance, transportation, healthcare, debt payments) or a "want" (dining, entertainment, shopping, travel, subscriptions)
2. Write a short, friendly one-paragraph summary of the user's budget with concrete amounts
3. Assess budget health and list up to 3 areas needing attention

Respond with JSON in this format:
{
  "needsCategories": ["Groceries"],
  "wantsCategories": ["Dining"],
  "summary": "One paragraph summary",
  "health": {"isHealthy": true, "status": "On Track", "areas": ["Dining spending is above target"]}
}"""

FALLBACK_SUMMARY = "AI insights are currently unavailable. The breakdown shows your income and spending for the last 30 days."


def _percentage(amount: float, income: float) -> int:
    if income <= 0:
        return 0
    return int(round(amount / income * 100))


class InsightsService:
    def __init__(self, session: Session, chat_service: Optional[AzureChatService] = None):
        self.session = session
        self._chat_service = chat_service

    @property
    def chat_service(self) -> AzureChatService:
        if self._chat_service is None:
            self._chat_service = get_chat_service()
        return self._chat_service

    def _category_spending(self, user_id: str, since: datetime):
        transactions = (
            self.session.query(Transaction)
            .filter(Transaction.user_id == user_id, Transaction.date >= since)
            .all()
        )

        income = 0.0
        spending: Dict[str, float] = defaultdict(float)
        for t in transactions:
            if t.amount > 0:
                income += t.amount
            elif t.amount < 0:
                spending[t.category or UNCATEGORIZED] += abs(t.amount)
        return round(income, 2), {name: round(total, 2) for name, total in spending.items()}

    def get_insights(self, user_id: str) -> BudgetInsights:
        since = datetime.utcnow() - timedelta(days=INSIGHTS_WINDOW_DAYS)
        income, spending = self._category_spending(user_id, since)
        expenses = round(sum(spending.values()), 2)
        savings = max(round(income - expenses, 2), 0.0)

        if not spending and income == 0:
            return BudgetInsights(
                budget_breakdown=BudgetBreakdown(),
                summary="No transactions in the last 30 days. Import a statement to see your budget insights.",
                health=BudgetHealth(is_healthy=True, status="No Data", areas=[]),
            )

        try:
            analysis = self._analyze(income, expenses, spending)
        except Exception:
            logger.exception("Failed to generate budget insights for user %s", user_id)
            analysis = None

        if analysis is None:
            return BudgetInsights(
                budget_breakdown=self._breakdown(income, expenses, expenses, 0.0, savings),
                summary=FALLBACK_SUMMARY,
                health=self._default_health(income, expenses),
            )

        wants_categories = {str(c) for c in analysis.get("wantsCategories") or []}
        wants = round(sum(total for name, total in spending.items() if name in wants_categories), 2)
        needs = round(expenses - wants, 2)

        health_data = analysis.get("health") if isinstance(analysis.get("health"), dict) else {}
        default_health = self._default_health(income, expenses)
        is_healthy = health_data.get("isHealthy")
        if not isinstance(is_healthy, bool):
            is_healthy = default_health.is_healthy
        health = BudgetHealth(
            is_healthy=is_healthy,
            status=str(health_data.get("status") or default_health.status),
            areas=[str(area) for area in (health_data.get("areas") or [])][:3],
        )

        return BudgetInsights(
            budget_breakdown=self._breakdown(income, expenses, needs, wants, savings),
            summary=str(analysis.get("summary") or FALLBACK_SUMMARY),
            health=health,
        )

    def _analyze(self, income: float, expenses: float, spending: Dict[str, float]) -> Optional[dict]:
        user_prompt = (
            f"Income (last 30 days): {income:.2f}\n"
            f"Expenses (last 30 days): {expenses:.2f}\n"
            f"Spending by category: {json.dumps(spending)}"
        )
        content = self.chat_service.complete_chat(SYSTEM_PROMPT, user_prompt)
        payload = json.loads(extract_json_from_code_block(content))
        if not isinstance(payload, dict):
            logger.warning("Unexpected insights response shape")
            return None
        return payload

    @staticmethod
    def _breakdown(income: float, expenses: float, needs: float, wants: float, savings: float) -> BudgetBreakdown:
        return BudgetBreakdown(
            needs_amount=needs,
            wants_amount=wants,
            savings_amount=savings,
            needs_percentage=_percentage(needs, income),
            wants_percentage=_percentage(wants, income),
            savings_percentage=_percentage(savings, income),
            total_income=income,
            total_expenses=expenses,
        )

    @staticmethod
    def _default_health(income: float, expenses: float) -> BudgetHealth:
        if expenses > income:
            return BudgetHealth(is_healthy=False, status="Overspending", areas=["Spending exceeds income"])
        return BudgetHealth(is_healthy=True, status="On Track", areas=[])
