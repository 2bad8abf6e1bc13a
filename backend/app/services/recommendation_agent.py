"""
Agentic Recommendation Service

Runs a bounded tool-calling conversation with the chat model: the model
investigates the user's transactions through the registered data tools and
finishes with 3-5 recommendations, which replace the user's active ones.
"""

import json
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.database.models import (
    Recommendation,
    RecommendationPriorityEnum,
    RecommendationStatusEnum,
    RecommendationTypeEnum,
    Transaction,
)
from app.models.schemas import GeneratedRecommendation, RecommendationPriority, RecommendationType
from app.models.schemas import Recommendation as RecommendationSchema
from app.services.ai_client import AzureChatService, ChatResult, ToolCall, extract_json_from_code_block, get_chat_service
from app.services.tools import ToolRegistry, build_tool_registry

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 5

SYSTEM_PROMPT = """You are an autonomous financial analysis agent with access to transaction data tools.

Your goal is to investigate spending patterns and generate 3-5 highly specific, actionable recommendations.

AVAILABLE TOOLS:
- SearchTransactions: Find transactions using natural language queries (qualitative discovery)
- GetCategorySpending: Aggregate total spending by category and time period (quantitative analysis)

ANALYSIS STRATEGY:
1. Start with SearchTransactions to discover patterns and categories of interest
2. Use GetCategorySpending to quantify the spending you found
3. Compare time periods (thisMonth vs lastMonth) to identify trends
4. Focus on the most impactful opportunities with concrete dollar amounts

RECOMMENDATION CRITERIA:
- SPECIFIC: Include exact amounts, percentages, and merchants
- ACTIONABLE: Clear next steps the user can take
- EVIDENCE-BASED: Reference both the transactions found and the total amounts spent

When you've completed your analysis (after 3-5 tool calls), respond with JSON in this format:
{
  "recommendations": [
    {
      "title": "Brief, attention-grabbing title",
      "message": "Specific recommendation with evidence from your tool calls",
      "type": "SpendingAlert|SavingsOpportunity|BehavioralInsight|BudgetWarning",
      "priority": "Low|Medium|High|Critical"
    }
  ]
}

Think step-by-step. Search first, then aggregate to quantify what you find."""

INITIAL_USER_PROMPT = """Analyze this user's transaction data to generate proactive financial recommendations.

Use the SearchTransactions tool to investigate:
1. Recurring charges and subscriptions
2. Frequent spending patterns
3. Unusual or concerning transactions
4. Optimization opportunities

Make 2-4 targeted searches, then provide 3-5 specific recommendations based on what you find."""


def recommendation_to_schema(recommendation: Recommendation) -> RecommendationSchema:
    return RecommendationSchema(
        id=recommendation.id,
        title=recommendation.title,
        message=recommendation.message,
        type=RecommendationType(recommendation.type.value),
        priority=RecommendationPriority(RecommendationPriorityEnum(recommendation.priority).label),
        status=recommendation.status.value,
        generated_at=recommendation.generated_at,
        expires_at=recommendation.expires_at,
    )


class RecommendationAgent:
    def __init__(
        self,
        session: Session,
        chat_service: Optional[AzureChatService] = None,
        tool_registry: Optional[ToolRegistry] = None,
    ):
        self.session = session
        self.chat_service = chat_service or get_chat_service()
        self.tool_registry = tool_registry or build_tool_registry(session)

    def get_active_recommendations(self, user_id: str) -> List[Recommendation]:
        return (
            self.session.query(Recommendation)
            .filter(
                Recommendation.user_id == user_id,
                Recommendation.status == RecommendationStatusEnum.ACTIVE,
                Recommendation.expires_at > datetime.utcnow(),
            )
            .order_by(Recommendation.priority.desc(), Recommendation.generated_at.desc())
            .limit(MAX_RECOMMENDATIONS)
            .all()
        )

    def generate_recommendations(self, user_id: str) -> int:
        """
        Regenerate recommendations for a user when there is new data.

        Returns the number of stored recommendations (0 when skipped or on
        failure). Errors are logged, never raised.
        """
        try:
            last_generated = (
                self.session.query(func.max(Recommendation.generated_at))
                .filter(Recommendation.user_id == user_id)
                .scalar()
            )
            last_imported = (
                self.session.query(func.max(Transaction.imported_at))
                .filter(Transaction.user_id == user_id)
                .scalar()
            )

            grace = timedelta(minutes=settings.RECOMMENDATION_REGENERATION_GRACE_MINUTES)
            if last_generated and last_imported and last_generated > last_imported - grace:
                logger.info("Skipping generation - no new data for user %s", user_id)
                return 0

            transaction_count = self.session.query(Transaction).filter(Transaction.user_id == user_id).count()
            if transaction_count < settings.RECOMMENDATION_MIN_TRANSACTIONS:
                logger.info("Insufficient transaction data for user %s", user_id)
                return 0

            recommendations = self._run_agent(user_id, settings.RECOMMENDATION_MAX_ITERATIONS)
            if not recommendations:
                logger.info("Agent generated no recommendations for %s", user_id)
                return 0

            self._store_recommendations(user_id, recommendations)
            logger.info("Generated %s recommendations for user %s", len(recommendations), user_id)
            return len(recommendations)
        except Exception:
            self.session.rollback()
            logger.exception("Failed to generate recommendations for user %s", user_id)
            return 0

    def _run_agent(self, user_id: str, max_iterations: int = 5) -> List[GeneratedRecommendation]:
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": INITIAL_USER_PROMPT},
        ]
        tools = self.tool_registry.to_chat_tools()

        logger.info("Agent started for user %s", user_id)

        for iteration in range(1, max_iterations + 1):
            logger.info("Agent iteration %s/%s for user %s", iteration, max_iterations, user_id)

            completion: ChatResult = self.chat_service.complete_messages(messages, tools=tools)
            messages.append(completion.to_message())

            reason = completion.finish_reason
            if reason == "stop":
                logger.info("Agent completed after %s iterations", iteration)
                return self.parse_recommendations(completion.content or "")

            if reason == "tool_calls":
                if not completion.tool_calls:
                    logger.warning("Finish reason is tool_calls but no tool calls present")
                    return []
                self._execute_tool_calls(user_id, messages, completion.tool_calls)
            elif reason == "length":
                logger.warning("Max tokens reached at iteration %s - continuing", iteration)
            elif reason == "content_filter":
                logger.warning("Content filtered at iteration %s", iteration)
                return []
            else:
                logger.warning("Unexpected finish reason: %s", reason)
                return []

        logger.warning("Agent reached max iterations (%s) without completion", max_iterations)
        return []

    def _execute_tool_calls(self, user_id: str, messages: List[Dict[str, Any]], tool_calls: List[ToolCall]) -> None:
        logger.info("Executing %s tool call(s)", len(tool_calls))

        for tool_call in tool_calls:
            started = time.monotonic()
            tool = self.tool_registry.get_tool(tool_call.name)
            if tool is None:
                logger.warning("Tool not found: %s", tool_call.name)
                content = json.dumps({"error": "Tool not found"})
            else:
                try:
                    arguments = json.loads(tool_call.arguments or "{}")
                    if not isinstance(arguments, dict):
                        raise ValueError("Tool arguments must be a JSON object")
                    content = tool.execute(user_id, arguments)
                    logger.info(
                        "Tool %s executed in %.0fms", tool.name, (time.monotonic() - started) * 1000
                    )
                except Exception as e:
                    logger.error("Error executing tool %s: %s", tool_call.name, e, exc_info=True)
                    content = json.dumps({"error": str(e)})

            messages.append({"role": "tool", "tool_call_id": tool_call.id, "content": content})

    @staticmethod
    def parse_recommendations(content: str) -> List[GeneratedRecommendation]:
        if not content:
            logger.warning("No content in final message")
            return []

        try:
            payload = json.loads(extract_json_from_code_block(content))
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse recommendations from agent output: %s", e)
            return []

        if not isinstance(payload, dict) or not isinstance(payload.get("recommendations"), list):
            return []

        recommendations = []
        for item in payload["recommendations"]:
            if not isinstance(item, dict) or not all(k in item for k in ("title", "message", "type", "priority")):
                continue

            try:
                rec_type = RecommendationType(item["type"])
            except ValueError:
                rec_type = RecommendationType.BEHAVIORAL_INSIGHT
            try:
                priority = RecommendationPriority(item["priority"])
            except ValueError:
                priority = RecommendationPriority.MEDIUM

            recommendations.append(GeneratedRecommendation(
                title=str(item["title"] or "")[:200],
                message=str(item["message"] or ""),
                type=rec_type,
                priority=priority,
            ))

        return recommendations[:MAX_RECOMMENDATIONS]

    def _store_recommendations(self, user_id: str, recommendations: List[GeneratedRecommendation]) -> None:
        if not recommendations:
            return

        self.session.query(Recommendation).filter(
            Recommendation.user_id == user_id,
            Recommendation.status == RecommendationStatusEnum.ACTIVE,
        ).update({"status": RecommendationStatusEnum.EXPIRED}, synchronize_session=False)

        now = datetime.utcnow()
        for generated in recommendations:
            self.session.add(Recommendation(
                id=str(uuid.uuid4()),
                user_id=user_id,
                title=generated.title,
                message=generated.message,
                type=RecommendationTypeEnum(generated.type.value),
                priority=RecommendationPriorityEnum.from_label(generated.priority.value).value,
                status=RecommendationStatusEnum.ACTIVE,
                generated_at=now,
                expires_at=now + timedelta(days=settings.RECOMMENDATION_TTL_DAYS),
            ))

        self.session.commit()
        logger.info("Stored %s recommendations for user %s", len(recommendations), user_id)

    def dismiss_recommendation(self, user_id: str, recommendation_id: str) -> bool:
        recommendation = (
            self.session.query(Recommendation)
            .filter(Recommendation.id == recommendation_id, Recommendation.user_id == user_id)
            .first()
        )
        if recommendation is None:
            return False

        recommendation.status = RecommendationStatusEnum.DISMISSED
        self.session.commit()
        return True
