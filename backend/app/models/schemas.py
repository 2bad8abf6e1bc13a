from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


class DetectionMethod(str, Enum):
    RULE_BASED = "RuleBased"
    AI = "AI"


class RecommendationType(str, Enum):
    SPENDING_ALERT = "SpendingAlert"
    SAVINGS_OPPORTUNITY = "SavingsOpportunity"
    BEHAVIORAL_INSIGHT = "BehavioralInsight"
    BUDGET_WARNING = "BudgetWarning"


class RecommendationPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Transaction(BaseModel):
    id: str
    date: datetime
    description: str
    amount: float
    balance: Optional[float] = None
    category: Optional[str] = None  # Primary category
    categories: List[str] = Field(default_factory=list)  # Primary + additional categories
    labels: Optional[str] = None
    imported_at: datetime
    account: str

    class Config:
        from_attributes = True


class PagedTransactions(BaseModel):
    items: List[Transaction]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class TransactionFilters(BaseModel):
    categories: List[str]
    accounts: List[str]


class DeleteTransactionsRequest(BaseModel):
    transaction_ids: List[str] = Field(default_factory=list)


class AddCategoryRequest(BaseModel):
    category_name: str = Field(..., min_length=1, max_length=100)


class BulkAddCategoriesRequest(BaseModel):
    transaction_ids: List[str]
    category_names: List[str]


class EnhancedTransactionDescription(BaseModel):
    original_description: str
    enhanced_description: str
    suggested_category: Optional[str] = None
    confidence_score: float = 0.0


class TransactionEnhancementResult(BaseModel):
    transaction_id: str
    import_session_hash: str
    transaction_index: int
    original_description: str
    enhanced_description: str
    suggested_category: Optional[str] = None
    confidence_score: float = 0.0


class ImportResult(BaseModel):
    source_file: str = ""
    imported_at: datetime = Field(default_factory=datetime.utcnow)
    imported_count: int = 0
    failed_count: int = 0
    total_rows: int = 0
    errors: List[str] = Field(default_factory=list)
    import_session_hash: str = ""
    enhancements: List[TransactionEnhancementResult] = Field(default_factory=list)
    detection_method: Optional[DetectionMethod] = None
    detection_confidence: float = 0.0


class EnhanceImportRequest(BaseModel):
    import_session_hash: str
    enhancements: List[TransactionEnhancementResult] = Field(default_factory=list)
    min_confidence_score: float = 0.5
    apply_enhancements: bool = True


class EnhanceImportResult(BaseModel):
    import_session_hash: str
    total_transactions: int
    enhanced_count: int
    skipped_count: int


class CsvStructureDetectionResult(BaseModel):
    delimiter: str = ","
    column_mappings: Dict[str, str] = Field(default_factory=dict)
    culture_code: str = "en-US"
    date_format: Optional[str] = None
    confidence_score: float = 0.0
    detection_method: DetectionMethod = DetectionMethod.RULE_BASED


class Recommendation(BaseModel):
    id: str
    title: str
    message: str
    type: RecommendationType
    priority: RecommendationPriority
    status: str
    generated_at: datetime
    expires_at: datetime


class GeneratedRecommendation(BaseModel):
    title: str
    message: str
    type: RecommendationType = RecommendationType.BEHAVIORAL_INSIGHT
    priority: RecommendationPriority = RecommendationPriority.MEDIUM


class JobStatus(BaseModel):
    job_id: str
    status: str
    enqueued_at: Optional[str] = None
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    meta: Dict = Field(default_factory=dict)
    result: Optional[Dict] = None
    error: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    max_results: int = Field(10, ge=1, le=50)


class SearchResult(BaseModel):
    id: str
    date: datetime
    description: str
    amount: float
    category: Optional[str] = None
    account: str


class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000)


class QueryResponse(BaseModel):
    answer: str
    transactions: List[SearchResult] = Field(default_factory=list)


class BudgetBreakdown(BaseModel):
    needs_amount: float = 0.0
    wants_amount: float = 0.0
    savings_amount: float = 0.0
    needs_percentage: int = 0
    wants_percentage: int = 0
    savings_percentage: int = 0
    total_income: float = 0.0
    total_expenses: float = 0.0


class BudgetHealth(BaseModel):
    is_healthy: bool = True
    status: str = "On Track"
    areas: List[str] = Field(default_factory=list)


class BudgetInsights(BaseModel):
    budget_breakdown: BudgetBreakdown
    summary: str
    health: BudgetHealth
