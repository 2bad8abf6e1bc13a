"""
Read-only data tools exposed to the recommendation agent.

Each tool declares a JSON schema for its arguments and returns a JSON
string; failures are reported inside the payload instead of raised so
the model can react to them.
"""

import json
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.database.models import Transaction
from app.services.semantic_search import TransactionSearchService, transaction_to_result

logger = logging.getLogger(__name__)

DATE_RANGES = ["last7days", "last30days", "last90days", "thisMonth", "lastMonth"]
DEFAULT_DATE_RANGE = "last30days"


class AgentTool:
    """Base class for tools callable by the chat model."""

    name: str = ""
    description: str = ""
    parameters_schema: Dict[str, Any] = {}

    def execute(self, user_id: str, arguments: Dict[str, Any]) -> str:
        raise NotImplementedError


class ToolRegistry:
    def __init__(self, tools: List[AgentTool]):
        self._tools = {tool.name: tool for tool in tools}

    def get_all_tools(self) -> List[AgentTool]:
        return list(self._tools.values())

    def get_tool(self, tool_name: str) -> Optional[AgentTool]:
        return self._tools.get(tool_name)

    def to_chat_tools(self) -> List[Dict[str, Any]]:
        """Function tool definitions in the chat completions format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters_schema,
                },
            }
            for tool in self._tools.values()
        ]


def _parse_iso_date(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value)[:10])


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class SearchTransactionsTool(AgentTool):
    name = "SearchTransactions"
    description = (
        "Search the user's transactions using a natural language query. Use this for qualitative "
        "discovery: recurring charges, subscriptions, specific merchants or unusual purchases. "
        "Returns the most relevant transactions with date, description, amount and category. "
        "Optional filters: minAmount, maxAmount (negative amounts are spending), startDate, endDate (YYYY-MM-DD)."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Natural language description of the transactions to find (e.g., 'streaming subscriptions', 'coffee shops')",
            },
            "maxResults": {
                "type": "integer",
                "description": "Maximum number of transactions to return (1-20)",
                "minimum": 1,
                "maximum": 20,
                "default": 10,
            },
            "minAmount": {"type": "number", "description": "Only include transactions with amount >= this value"},
            "maxAmount": {"type": "number", "description": "Only include transactions with amount <= this value"},
            "startDate": {"type": "string", "description": "Only include transactions on or after this date (YYYY-MM-DD)"},
            "endDate": {"type": "string", "description": "Only include transactions on or before this date (YYYY-MM-DD)"},
        },
        "required": ["query"],
    }

    def __init__(self, search_service: TransactionSearchService):
        self.search_service = search_service

    def execute(self, user_id: str, arguments: Dict[str, Any]) -> str:
        try:
            query = arguments.get("query")
            if not isinstance(query, str) or not query.strip():
                return json.dumps({"success": False, "error": "Query is required"})

            max_results = arguments.get("maxResults")
            max_results = 10 if max_results is None else int(max_results)
            max_results = max(1, min(20, max_results))

            logger.info("SearchTransactions called: query=%s, maxResults=%s", query, max_results)

            transactions = self.search_service.search(
                user_id,
                query,
                max_results=max_results,
                min_amount=_optional_float(arguments.get("minAmount")),
                max_amount=_optional_float(arguments.get("maxAmount")),
                start_date=_parse_iso_date(arguments.get("startDate")),
                end_date=_parse_iso_date(arguments.get("endDate")),
            )

            return json.dumps({
                "success": True,
                "query": query,
                "count": len(transactions),
                "transactions": [transaction_to_result(t) for t in transactions],
            })
        except Exception as e:
            logger.error("Error executing SearchTransactions tool: %s", e, exc_info=True)
            return json.dumps({"success": False, "error": str(e)})


def parse_date_range(date_range: Optional[str], now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Resolve a preset range name to (start, end) dates; unknown names mean the last 30 days."""
    today = (now or datetime.utcnow()).replace(hour=0, minute=0, second=0, microsecond=0)
    first_of_month = today.replace(day=1)

    if date_range == "last7days":
        return today - timedelta(days=7), today
    if date_range == "last90days":
        return today - timedelta(days=90), today
    if date_range == "thisMonth":
        return first_of_month, today
    if date_range == "lastMonth":
        last_month_end = first_of_month - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    return today - timedelta(days=30), today


class GetCategorySpendingTool(AgentTool):
    name = "GetCategorySpending"
    description = (
        "Get total spending for a specific category over a date range. Use this to quantify spending patterns "
        "and compare time periods. Returns total amount, transaction count, and top merchants. "
        "Useful for understanding spending magnitude after finding patterns with SearchTransactions. "
        "Date ranges: 'last7days', 'last30days', 'last90days', 'thisMonth', 'lastMonth'."
    )
    parameters_schema = {
        "type": "object",
        "properties": {
            "category": {
                "type": "string",
                "description": "Category name to analyze (e.g., 'Dining', 'Entertainment', 'Shopping', 'Transportation')",
            },
            "dateRange": {
                "type": "string",
                "description": "Preset date range: 'last7days', 'last30days', 'last90days', 'thisMonth', 'lastMonth'",
                "enum": DATE_RANGES,
                "default": DEFAULT_DATE_RANGE,
            },
        },
        "required": ["category"],
    }

    def __init__(self, session: Session):
        self.session = session

    def execute(self, user_id: str, arguments: Dict[str, Any]) -> str:
        try:
            category = arguments.get("category")
            if not isinstance(category, str) or not category.strip():
                raise ValueError("Category is required")

            date_range = arguments.get("dateRange") or DEFAULT_DATE_RANGE
            start_date, end_date = parse_date_range(date_range)

            logger.info("GetCategorySpending called: category=%s, dateRange=%s", category, date_range)

            # Dates are stored with a time component; include the whole end day
            transactions = (
                self.session.query(Transaction)
                .filter(
                    Transaction.user_id == user_id,
                    Transaction.category == category,
                    Transaction.date >= start_date,
                    Transaction.date < end_date + timedelta(days=1),
                    Transaction.amount < 0,
                )
                .all()
            )

            payload: Dict[str, Any] = {
                "success": True,
                "category": category,
                "dateRange": date_range,
                "startDate": start_date.strftime("%Y-%m-%d"),
                "endDate": end_date.strftime("%Y-%m-%d"),
            }

            if not transactions:
                payload.update({
                    "totalSpending": 0,
                    "transactionCount": 0,
                    "message": "No transactions found in this category and date range.",
                })
                return json.dumps(payload)

            total_spending = abs(sum(t.amount for t in transactions))
            transaction_count = len(transactions)

            merchants: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"amount": 0.0, "count": 0})
            for t in transactions:
                merchants[t.description]["amount"] += t.amount
                merchants[t.description]["count"] += 1

            top_merchants = sorted(
                (
                    {"merchant": name, "amount": round(abs(data["amount"]), 2), "count": data["count"]}
                    for name, data in merchants.items()
                ),
                key=lambda m: m["amount"],
                reverse=True,
            )[:3]

            payload.update({
                "daySpan": (end_date - start_date).days,
                "totalSpending": round(total_spending, 2),
                "transactionCount": transaction_count,
                "averageTransaction": round(total_spending / transaction_count, 2),
                "topMerchants": top_merchants,
            })
            return json.dumps(payload)
        except Exception as e:
            logger.error("Error executing GetCategorySpending tool: %s", e, exc_info=True)
            return json.dumps({"success": False, "error": str(e)})


def build_tool_registry(session: Session, search_service: Optional[TransactionSearchService] = None) -> ToolRegistry:
    """Registry with every data tool bound to the given session."""
    search_service = search_service or TransactionSearchService(session)
    return ToolRegistry([
        SearchTransactionsTool(search_service),
        GetCategorySpendingTool(session),
    ])
