import json

from app.config import settings
from app.database.models import Transaction

CSV_CONTENT = (
    "Date,Description,Amount\n"
    "01/15/2024,STARBUCKS #1234,-4.50\n"
    "01/16/2024,STARBUCKS #1234,-3.00\n"
    "01/17/2024,ACME PAYROLL,2000.00\n"
)


def _enhancer_reply():
    return "```json\n" + json.dumps([
        {
            "originalDescription": "STARBUCKS #1234",
            "enhancedDescription": "Starbucks Coffee",
            "suggestedCategory": "Dining",
            "confidenceScore": 0.95,
        },
        {
            "originalDescription": "ACME PAYROLL",
            "enhancedDescription": "ACME Salary",
            "suggestedCategory": None,
            "confidenceScore": 0.4,
        },
    ]) + "\n```"


def _upload(client, name="statement.csv", content=CSV_CONTENT.encode(), account="Checking"):
    data = {"account": account} if account is not None else {}
    return client.post("/api/transactions/import", files={"file": (name, content)}, data=data)


def test_csv_import_enhances_and_stores_rows(client, session, fake_chat):
    fake_chat.replies = [_enhancer_reply()]

    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["imported_count"] == 3
    assert body["detection_method"] == "RuleBased"
    assert len(body["import_session_hash"]) == 12
    assert [e["transaction_index"] for e in body["enhancements"]] == [0, 1, 2]

    # Only distinct descriptions go to the model
    prompt = fake_chat.calls[0]["user"]
    assert prompt.count("STARBUCKS #1234") == 1

    rows = session.query(Transaction).order_by(Transaction.date).all()
    assert [r.description for r in rows] == ["Starbucks Coffee", "Starbucks Coffee", "ACME Salary"]
    assert [r.category for r in rows] == ["Dining", "Dining", "Uncategorized"]
    assert {r.import_session_hash for r in rows} == {body["import_session_hash"]}
    assert {r.user_id for r in rows} == {"user-1"}


def test_enhancer_failure_keeps_original_rows(client, session, fake_chat):
    fake_chat.replies = [RuntimeError("timeout")]

    body = _upload(client).json()

    assert body["imported_count"] == 3
    assert all(e["confidence_score"] == 0.0 for e in body["enhancements"])
    assert session.query(Transaction).filter(Transaction.description == "ACME PAYROLL").count() == 1


def test_upload_validation(client, monkeypatch):
    assert _upload(client, content=b"").status_code == 400
    assert _upload(client, name="statement.pdf").status_code == 400

    missing_account = _upload(client, account=" ")
    assert missing_account.status_code == 400
    assert missing_account.json()["detail"] == "Account name is required"

    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 1)
    too_big = _upload(client, content=b"x" * (1024 * 1024 + 1))
    assert too_big.status_code == 413


def test_image_import_uses_vision_extraction(client, session, fake_chat):
    fake_chat.replies = [
        "```json\n" + json.dumps({
            "confidence_score": 0.9,
            "transactions": [{"date": "2024-02-01", "description": "UBER *TRIP", "amount": -12.5, "balance": None}],
        }) + "\n```",
        "```json\n" + json.dumps([{
            "originalDescription": "UBER *TRIP",
            "enhancedDescription": "Uber Ride",
            "suggestedCategory": "Transport",
            "confidenceScore": 0.9,
        }]) + "\n```",
    ]

    response = _upload(client, name="screenshot.PNG", content=b"\x89PNG fake")

    assert response.status_code == 200
    assert response.json()["detection_method"] == "AI"
    row = session.query(Transaction).one()
    assert (row.description, row.category, row.account) == ("Uber Ride", "Transport", "Checking")


def test_enhance_endpoint_applies_confident_suggestions(client, session, add_transaction):
    first = add_transaction(description="AMZN MKTP", import_session_hash="ABC123")
    second = add_transaction(description="SQ *CAFE", import_session_hash="ABC123")
    foreign = add_transaction(description="OTHER", import_session_hash="ABC123", user_id="user-2")

    def enhancement(transaction, text, score):
        return {
            "transaction_id": transaction.id,
            "import_session_hash": "ABC123",
            "transaction_index": 0,
            "original_description": transaction.description,
            "enhanced_description": text,
            "suggested_category": "Shopping",
            "confidence_score": score,
        }

    response = client.post("/api/transactions/import/enhance", json={
        "import_session_hash": "ABC123",
        "min_confidence_score": 0.7,
        "enhancements": [
            enhancement(first, "Amazon", 0.9),
            enhancement(second, "Square Cafe", 0.3),
            enhancement(foreign, "Hijacked", 0.99),
        ],
    })

    assert response.json() == {
        "import_session_hash": "ABC123",
        "total_transactions": 3,
        "enhanced_count": 1,
        "skipped_count": 2,
    }
    session.refresh(first)
    session.refresh(foreign)
    assert (first.description, first.category) == ("Amazon", "Shopping")
    assert foreign.description == "OTHER"
