from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import List, Optional
from datetime import datetime
import math
import uuid
from sqlalchemy.orm import Session, selectinload

from app.models.schemas import (
    Transaction,
    PagedTransactions,
    TransactionFilters,
    DeleteTransactionsRequest,
    AddCategoryRequest,
    BulkAddCategoriesRequest,
)
from app.api.auth import get_current_user_id
from app.database.postgres_db import get_db as get_session
from app.database.models import Transaction as TransactionModel, TransactionCategory

router = APIRouter(prefix="/transactions", tags=["transactions"])

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _unique(values: List[str]) -> List[str]:
    seen = set()
    return [v for v in values if not (v in seen or seen.add(v))]


def _to_schema(transaction: TransactionModel) -> Transaction:
    """Expose the primary category followed by any additional ones."""
    categories = []
    if transaction.category:
        categories.append(transaction.category)
    categories.extend(c.category_name for c in transaction.categories)

    return Transaction(
        id=transaction.id,
        date=transaction.date,
        description=transaction.description,
        amount=transaction.amount,
        balance=transaction.balance,
        category=transaction.category,
        categories=_unique(categories),
        labels=transaction.labels,
        imported_at=transaction.imported_at,
        account=transaction.account,
    )


@router.get("", response_model=PagedTransactions)
async def get_transactions(
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    category: Optional[str] = None,
    account: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    if page < 1:
        page = 1
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        page_size = DEFAULT_PAGE_SIZE

    query = session.query(TransactionModel).filter(TransactionModel.user_id == user_id)
    if category and category.strip():
        query = query.filter(TransactionModel.category == category)
    if account and account.strip():
        query = query.filter(TransactionModel.account == account)

    total_count = query.count()
    items = (
        query.options(selectinload(TransactionModel.categories))
        .order_by(TransactionModel.date.desc(), TransactionModel.imported_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    total_pages = math.ceil(total_count / page_size) if total_count else 0
    return PagedTransactions(
        items=[_to_schema(t) for t in items],
        total_count=total_count,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


@router.get("/filters", response_model=TransactionFilters)
async def get_transaction_filters(
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    categories = (
        session.query(TransactionModel.category)
        .filter(
            TransactionModel.user_id == user_id,
            TransactionModel.category.isnot(None),
            TransactionModel.category != "",
        )
        .distinct()
        .all()
    )
    accounts = (
        session.query(TransactionModel.account)
        .filter(TransactionModel.user_id == user_id)
        .distinct()
        .all()
    )

    return TransactionFilters(
        categories=sorted(row[0] for row in categories),
        accounts=sorted(row[0] for row in accounts),
    )


@router.delete("/bulk")
async def delete_transactions(
    request: DeleteTransactionsRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    if not request.transaction_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No transaction IDs provided"
        )

    # Only delete transactions that belong to the current user
    transactions = (
        session.query(TransactionModel)
        .filter(TransactionModel.user_id == user_id, TransactionModel.id.in_(request.transaction_ids))
        .all()
    )
    if not transactions:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No transactions found to delete"
        )

    for transaction in transactions:
        session.delete(transaction)
    session.commit()

    return {"deleted_count": len(transactions)}


@router.post("/bulk-categories")
async def bulk_add_categories(
    request: BulkAddCategoriesRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    transaction_ids = _unique(request.transaction_ids)
    category_names = _unique([name.strip()[:100] for name in request.category_names if name and name.strip()])
    if not category_names:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category name is required"
        )

    found = {
        row[0]
        for row in session.query(TransactionModel.id)
        .filter(TransactionModel.user_id == user_id, TransactionModel.id.in_(transaction_ids))
        .all()
    }
    if len(found) != len(transaction_ids):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some transactions not found or do not belong to user"
        )

    existing = {
        (row.transaction_id, row.category_name)
        for row in session.query(TransactionCategory.transaction_id, TransactionCategory.category_name)
        .filter(TransactionCategory.transaction_id.in_(transaction_ids))
        .all()
    }

    added = 0
    for transaction_id in transaction_ids:
        for category_name in category_names:
            if (transaction_id, category_name) in existing:
                continue
            session.add(TransactionCategory(
                id=str(uuid.uuid4()),
                transaction_id=transaction_id,
                category_name=category_name,
                user_id=user_id,
                created_at=datetime.utcnow(),
            ))
            added += 1

    if added:
        session.commit()

    return {
        "added_count": added,
        "message": f"Added {added} categories to {len(transaction_ids)} transactions",
    }


@router.post("/{transaction_id}/categories")
async def add_category(
    transaction_id: str,
    request: AddCategoryRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    transaction = (
        session.query(TransactionModel)
        .filter(TransactionModel.id == transaction_id, TransactionModel.user_id == user_id)
        .first()
    )
    if transaction is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found"
        )

    category_name = request.category_name.strip()
    if not category_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category name is required"
        )

    existing = (
        session.query(TransactionCategory)
        .filter(
            TransactionCategory.transaction_id == transaction_id,
            TransactionCategory.category_name == category_name,
        )
        .first()
    )
    if existing is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category already exists for this transaction"
        )

    transaction_category = TransactionCategory(
        id=str(uuid.uuid4()),
        transaction_id=transaction_id,
        category_name=category_name,
        user_id=user_id,
        created_at=datetime.utcnow(),
    )
    session.add(transaction_category)
    session.commit()

    return {"id": transaction_category.id, "category_name": transaction_category.category_name}


@router.delete("/{transaction_id}/categories/{category_name}")
async def remove_category(
    transaction_id: str,
    category_name: str,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    transaction_category = (
        session.query(TransactionCategory)
        .filter(
            TransactionCategory.transaction_id == transaction_id,
            TransactionCategory.category_name == category_name,
            TransactionCategory.user_id == user_id,
        )
        .first()
    )
    if transaction_category is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found"
        )

    session.delete(transaction_category)
    session.commit()

    return {"message": "Category removed successfully"}
