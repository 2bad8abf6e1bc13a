"""
SQLAlchemy ORM Models for PostgreSQL
"""
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, Text, Enum as SQLEnum, Integer, Index, UniqueConstraint
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship
from pgvector.sqlalchemy import Vector
from datetime import datetime
import enum

Base = declarative_base()

EMBEDDING_DIMENSIONS = 1536  # text-embedding-3-small


class RecommendationTypeEnum(str, enum.Enum):
    SPENDING_ALERT = "SpendingAlert"
    SAVINGS_OPPORTUNITY = "SavingsOpportunity"
    BEHAVIORAL_INSIGHT = "BehavioralInsight"
    BUDGET_WARNING = "BudgetWarning"


class RecommendationPriorityEnum(int, enum.Enum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @property
    def label(self) -> str:
        return self.name.title()

    @classmethod
    def from_label(cls, label: str) -> "RecommendationPriorityEnum":
        return cls[label.strip().upper()]


class RecommendationStatusEnum(str, enum.Enum):
    ACTIVE = "Active"
    DISMISSED = "Dismissed"
    EXPIRED = "Expired"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    account = Column(String(100), nullable=False)
    date = Column(DateTime, nullable=False)
    description = Column(String(500), nullable=False)
    amount = Column(Float, nullable=False)  # Negative = money out
    balance = Column(Float, nullable=True)
    category = Column(String(100), nullable=True)
    labels = Column(String(200), nullable=True)
    imported_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    import_session_hash = Column(String(32), nullable=True, index=True)

    # Semantic search vector (back-filled by the embedding job)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)

    # Relationships
    categories = relationship(
        "TransactionCategory",
        back_populates="transaction",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index('ix_transactions_rag_context', 'user_id', 'account', 'date'),
        Index('ix_transactions_category', 'category'),
    )


class TransactionCategory(Base):
    """Additional categories attached to a transaction besides its primary one."""
    __tablename__ = "transaction_categories"

    id = Column(String, primary_key=True)
    transaction_id = Column(String, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False)
    category_name = Column(String(100), nullable=False)
    user_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    transaction = relationship("Transaction", back_populates="categories")

    __table_args__ = (
        UniqueConstraint('transaction_id', 'category_name', name='uq_transaction_category'),
        Index('ix_transaction_categories_transaction_user', 'transaction_id', 'user_id'),
        Index('ix_transaction_categories_name_user', 'category_name', 'user_id'),
    )


class Recommendation(Base):
    """AI-generated financial advice shown on the dashboard until it expires."""
    __tablename__ = "recommendations"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(RecommendationTypeEnum, values_callable=lambda x: [e.value for e in x]), nullable=False)
    priority = Column(Integer, nullable=False, default=RecommendationPriorityEnum.MEDIUM.value)
    status = Column(
        SQLEnum(RecommendationStatusEnum, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=RecommendationStatusEnum.ACTIVE,
    )
    generated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index('ix_recommendations_user_status', 'user_id', 'status'),
    )
