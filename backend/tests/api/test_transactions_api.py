from datetime import datetime, timedelta

from app.database.models import Transaction, TransactionCategory


def test_requests_without_valid_key_are_rejected(client):
    assert client.get("/api/transactions", headers={"X-API-Key": ""}).status_code == 401
    assert client.get("/api/transactions", headers={"X-API-Key": "wrong"}).status_code == 401


def test_health_endpoint_is_public(client):
    response = client.get("/health", headers={"X-API-Key": ""})

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_pagination_newest_first(client, add_transaction):
    start = datetime(2024, 1, 1)
    for i in range(25):
        add_transaction(description=f"Row {i}", date=start + timedelta(days=i))
    add_transaction(description="Not mine", user_id="user-2")

    body = client.get("/api/transactions", params={"page": 3, "page_size": 10}).json()

    assert body["total_count"] == 25
    assert body["total_pages"] == 3
    assert body["has_next_page"] is False
    assert body["has_previous_page"] is True
    assert [item["description"] for item in body["items"]] == [f"Row {i}" for i in range(4, -1, -1)]


def test_out_of_range_paging_is_normalized(client, add_transaction):
    add_transaction()

    body = client.get("/api/transactions", params={"page": 0, "page_size": 500}).json()

    assert body["page"] == 1
    assert body["page_size"] == 20
    assert body["has_previous_page"] is False


def test_filters_by_category_and_account(client, add_transaction):
    add_transaction(description="Bistro", category="Dining", account="Checking")
    add_transaction(description="Diner", category="Dining", account="Visa")
    add_transaction(description="Rent", category="Housing", account="Checking")

    body = client.get("/api/transactions", params={"category": "Dining", "account": "Visa"}).json()

    assert [item["description"] for item in body["items"]] == ["Diner"]


def test_filter_options(client, add_transaction):
    add_transaction(category="Dining", account="Visa")
    add_transaction(category="Groceries", account="Checking")
    add_transaction(category="", account="Checking")
    add_transaction(category=None, account="Savings")
    add_transaction(category="Secret", account="Hidden", user_id="user-2")

    assert client.get("/api/transactions/filters").json() == {
        "categories": ["Dining", "Groceries"],
        "accounts": ["Checking", "Savings", "Visa"],
    }


def test_bulk_delete_only_touches_own_rows(client, session, add_transaction):
    mine = add_transaction(description="Mine")
    theirs = add_transaction(description="Theirs", user_id="user-2")
    session.add(TransactionCategory(id="tc-1", transaction_id=mine.id, category_name="Extra", user_id="user-1"))
    session.commit()

    response = client.request(
        "DELETE", "/api/transactions/bulk", json={"transaction_ids": [mine.id, theirs.id]}
    )

    assert response.status_code == 200
    assert response.json() == {"deleted_count": 1}
    assert session.query(Transaction).count() == 1
    assert session.query(TransactionCategory).count() == 0


def test_bulk_delete_errors(client):
    assert client.request("DELETE", "/api/transactions/bulk", json={"transaction_ids": []}).status_code == 400
    assert client.request("DELETE", "/api/transactions/bulk", json={"transaction_ids": ["missing"]}).status_code == 404


def test_additional_categories_lifecycle(client, add_transaction):
    transaction = add_transaction(category="Dining")
    url = f"/api/transactions/{transaction.id}/categories"

    response = client.post(url, json={"category_name": " Coffee "})
    assert response.status_code == 200
    assert response.json()["category_name"] == "Coffee"

    assert client.post(url, json={"category_name": "Coffee"}).status_code == 400
    assert client.post("/api/transactions/missing/categories", json={"category_name": "X"}).status_code == 404

    item = client.get("/api/transactions").json()["items"][0]
    assert item["category"] == "Dining"
    assert item["categories"] == ["Dining", "Coffee"]

    removed = client.delete(f"{url}/Coffee")
    assert removed.json() == {"message": "Category removed successfully"}
    assert client.delete(f"{url}/Coffee").status_code == 404


def test_bulk_add_categories_skips_existing_pairs(client, session, add_transaction):
    first = add_transaction()
    second = add_transaction()
    session.add(TransactionCategory(id="tc-1", transaction_id=first.id, category_name="Travel", user_id="user-1"))
    session.commit()

    response = client.post(
        "/api/transactions/bulk-categories",
        json={"transaction_ids": [first.id, second.id], "category_names": ["Travel", "Work", " "]},
    )

    assert response.status_code == 200
    assert response.json() == {"added_count": 3, "message": "Added 3 categories to 2 transactions"}
    assert session.query(TransactionCategory).count() == 4


def test_bulk_add_categories_rejects_foreign_rows(client, add_transaction):
    mine = add_transaction()
    theirs = add_transaction(user_id="user-2")

    response = client.post(
        "/api/transactions/bulk-categories",
        json={"transaction_ids": [mine.id, theirs.id], "category_names": ["Work"]},
    )

    assert response.status_code == 400


def test_blank_category_names_are_rejected(client, add_transaction):
    transaction = add_transaction()

    single = client.post(f"/api/transactions/{transaction.id}/categories", json={"category_name": "   "})
    bulk = client.post(
        "/api/transactions/bulk-categories",
        json={"transaction_ids": [transaction.id], "category_names": [" ", ""]},
    )

    assert single.status_code == 400
    assert single.json()["detail"] == "Category name is required"
    assert bulk.status_code == 400


def test_bulk_add_categories_truncates_before_duplicate_check(client, session, add_transaction):
    transaction = add_transaction()
    long_name = "A" * 150
    payload = {"transaction_ids": [transaction.id], "category_names": [long_name, "A" * 120]}

    first = client.post("/api/transactions/bulk-categories", json=payload)
    second = client.post("/api/transactions/bulk-categories", json=payload)

    assert first.json()["added_count"] == 1
    assert second.json()["added_count"] == 0
    names = [row.category_name for row in session.query(TransactionCategory).all()]
    assert names == ["A" * 100]
