import json
from datetime import datetime, timedelta

from app.services.semantic_search import TransactionSearchService
from app.services.tools import (
    GetCategorySpendingTool,
    SearchTransactionsTool,
    build_tool_registry,
    parse_date_range,
)


def test_registry_exposes_function_tools(session):
    registry = build_tool_registry(session)

    assert [tool.name for tool in registry.get_all_tools()] == ["SearchTransactions", "GetCategorySpending"]
    assert registry.get_tool("Nope") is None

    chat_tools = registry.to_chat_tools()
    assert chat_tools[1]["type"] == "function"
    assert chat_tools[1]["function"]["name"] == "GetCategorySpending"
    assert chat_tools[1]["function"]["parameters"]["required"] == ["category"]


def test_parse_date_range_presets():
    now = datetime(2024, 3, 15, 10, 30)

    assert parse_date_range("last7days", now) == (datetime(2024, 3, 8), datetime(2024, 3, 15))
    assert parse_date_range("thisMonth", now) == (datetime(2024, 3, 1), datetime(2024, 3, 15))
    assert parse_date_range("lastMonth", now) == (datetime(2024, 2, 1), datetime(2024, 2, 29))
    assert parse_date_range("bogus", now) == (datetime(2024, 2, 14), datetime(2024, 3, 15))


def test_category_spending_totals_and_top_merchants(session, add_transaction):
    recent = datetime.utcnow() - timedelta(days=2)
    add_transaction(description="Cafe A", amount=-10.0, category="Dining", date=recent)
    add_transaction(description="Cafe A", amount=-20.0, category="Dining", date=recent)
    add_transaction(description="Cafe B", amount=-5.0, category="Dining", date=recent)
    add_transaction(description="Refund", amount=100.0, category="Dining", date=recent)
    add_transaction(description="Old Cafe", amount=-50.0, category="Dining", date=recent - timedelta(days=60))
    add_transaction(description="Gym", amount=-40.0, category="Fitness", date=recent)
    add_transaction(description="Cafe C", amount=-99.0, category="Dining", date=recent, user_id="user-2")

    payload = json.loads(GetCategorySpendingTool(session).execute("user-1", {"category": "Dining"}))

    assert payload["success"] is True
    assert payload["dateRange"] == "last30days"
    assert payload["daySpan"] == 30
    assert payload["totalSpending"] == 35.0
    assert payload["transactionCount"] == 3
    assert payload["averageTransaction"] == 11.67
    assert payload["topMerchants"][0] == {"merchant": "Cafe A", "amount": 30.0, "count": 2}
    assert len(payload["topMerchants"]) == 2


def test_category_spending_without_rows(session):
    payload = json.loads(GetCategorySpendingTool(session).execute("user-1", {"category": "Travel", "dateRange": "last7days"}))

    assert payload["success"] is True
    assert payload["totalSpending"] == 0
    assert payload["transactionCount"] == 0
    assert "No transactions found" in payload["message"]


def test_category_spending_requires_category(session):
    payload = json.loads(GetCategorySpendingTool(session).execute("user-1", {}))

    assert payload == {"success": False, "error": "Category is required"}


def test_search_uses_keyword_match_without_vectors(session, add_transaction, fake_embeddings):
    add_transaction(description="NETFLIX.COM Subscription", amount=-15.99, category="Entertainment")
    add_transaction(description="Grocery Store", amount=-80.0, category="Groceries")
    add_transaction(description="Netflix", amount=-15.99, user_id="user-2")
    tool = SearchTransactionsTool(TransactionSearchService(session, embedding_service=fake_embeddings))

    payload = json.loads(tool.execute("user-1", {"query": "netflix subscriptions"}))

    assert payload["success"] is True
    assert payload["count"] == 1
    assert payload["transactions"][0]["description"] == "NETFLIX.COM Subscription"
    assert payload["transactions"][0]["amount"] == -15.99
    assert fake_embeddings.texts == []


def test_search_applies_amount_filters(session, add_transaction, fake_embeddings):
    add_transaction(description="Coffee small", amount=-3.0)
    add_transaction(description="Coffee beans", amount=-25.0)
    tool = SearchTransactionsTool(TransactionSearchService(session, embedding_service=fake_embeddings))

    payload = json.loads(tool.execute("user-1", {"query": "coffee", "maxAmount": -10}))

    assert [t["description"] for t in payload["transactions"]] == ["Coffee beans"]


def test_search_rejects_blank_query(session, fake_embeddings):
    tool = SearchTransactionsTool(TransactionSearchService(session, embedding_service=fake_embeddings))

    payload = json.loads(tool.execute("user-1", {"query": "  "}))

    assert payload["success"] is False


def test_search_max_results_is_clamped(session, add_transaction, fake_embeddings):
    for i in range(25):
        add_transaction(description=f"Coffee {i}", amount=-3.0)
    tool = SearchTransactionsTool(TransactionSearchService(session, embedding_service=fake_embeddings))

    assert json.loads(tool.execute("user-1", {"query": "coffee"}))["count"] == 10
    assert json.loads(tool.execute("user-1", {"query": "coffee", "maxResults": 0}))["count"] == 1
    assert json.loads(tool.execute("user-1", {"query": "coffee", "maxResults": 50}))["count"] == 20


def test_search_date_window_includes_the_whole_end_day(session, add_transaction, fake_embeddings):
    add_transaction(description="Coffee before", date=datetime(2024, 3, 9, 23, 0))
    add_transaction(description="Coffee afternoon", date=datetime(2024, 3, 10, 15, 30))
    add_transaction(description="Coffee next day", date=datetime(2024, 3, 11, 0, 0))
    tool = SearchTransactionsTool(TransactionSearchService(session, embedding_service=fake_embeddings))

    payload = json.loads(tool.execute(
        "user-1", {"query": "coffee", "startDate": "2024-03-10", "endDate": "2024-03-10"}
    ))

    assert [t["description"] for t in payload["transactions"]] == ["Coffee afternoon"]


def test_search_service_end_date_accepts_a_timestamp(session, add_transaction, fake_embeddings):
    add_transaction(description="Late coffee", date=datetime(2024, 3, 10, 22, 45))
    service = TransactionSearchService(session, embedding_service=fake_embeddings)

    results = service.search("user-1", "coffee", end_date=datetime(2024, 3, 10, 9, 0))

    assert [t.description for t in results] == ["Late coffee"]
