from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Request
from typing import Dict, List, Optional
from datetime import datetime
import hashlib
import logging
import os
import uuid
from sqlalchemy.orm import Session

from app.config import settings
from app.models.schemas import (
    ImportResult,
    EnhanceImportRequest,
    EnhanceImportResult,
    EnhancedTransactionDescription,
    TransactionEnhancementResult,
    DetectionMethod,
)
from app.api.auth import get_current_user_id, limiter
from app.database.postgres_db import get_db as get_session
from app.database.models import Transaction as TransactionModel
from app.parsers.detection import CsvAnalyzer, CsvDetector, CsvStructureDetector
from app.parsers.csv_importer import CsvImporter
from app.parsers.image_importer import ImageImporter
from app.services.ai_client import AzureChatService, get_chat_service
from app.services.transaction_enhancer import TransactionEnhancer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions/import", tags=["import"])

CSV_EXTENSIONS = {".csv"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}
IMAGE_CONTENT_TYPES = {".png": "image/png", ".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".webp": "image/webp"}


def generate_session_hash(file_name: str, timestamp: datetime) -> str:
    """12 uppercase hex characters identifying one import."""
    raw = f"{file_name}_{timestamp.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest().upper()[:12]


def _decode_csv(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _validate_upload(file_name: str, content: bytes, account: Optional[str]) -> str:
    """Return the lower-cased extension or raise an HTTP error."""
    if not file_name or not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded"
        )

    extension = os.path.splitext(file_name)[1].lower()
    if extension not in CSV_EXTENSIONS | IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only CSV files and statement images (.png, .jpg, .jpeg, .webp) are supported"
        )

    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size exceeds {settings.MAX_UPLOAD_SIZE_MB}MB limit"
        )

    if not account or not account.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account name is required"
        )

    return extension


def _apply_enhancements(
    transactions: List[Dict],
    enhancements: List[EnhancedTransactionDescription],
    session_hash: str,
) -> List[TransactionEnhancementResult]:
    """Apply enhanced descriptions/categories in place and build the per-row report."""
    by_original = {e.original_description: e for e in enhancements}
    results = []

    for index, transaction in enumerate(transactions):
        original = transaction["description"]
        enhancement = by_original.get(original)
        transaction["import_session_hash"] = session_hash

        if enhancement is None:
            continue

        transaction["description"] = enhancement.enhanced_description
        if enhancement.suggested_category:
            transaction["category"] = enhancement.suggested_category

        results.append(TransactionEnhancementResult(
            transaction_id=transaction["id"],
            import_session_hash=session_hash,
            transaction_index=index,
            original_description=original,
            enhanced_description=enhancement.enhanced_description,
            suggested_category=enhancement.suggested_category,
            confidence_score=enhancement.confidence_score,
        ))

    return results


@router.post("", response_model=ImportResult)
@limiter.limit("10/minute")
async def import_transactions(
    request: Request,
    file: UploadFile = File(...),
    account: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session),
    chat_service: AzureChatService = Depends(get_chat_service)
):
    content = await file.read()
    file_name = file.filename or ""
    extension = _validate_upload(file_name, content, account)
    account = account.strip()

    try:
        imported_at = datetime.utcnow()
        session_hash = generate_session_hash(file_name, imported_at)

        if extension in IMAGE_EXTENSIONS:
            importer = ImageImporter(chat_service=chat_service)
            result, transactions = importer.process_image(
                content, file_name, user_id, account, IMAGE_CONTENT_TYPES[extension]
            )
            result.detection_method = DetectionMethod.AI
        else:
            csv_content = _decode_csv(content)
            detector = CsvStructureDetector(CsvDetector(CsvAnalyzer(chat_service)))
            detection = detector.detect_structure(csv_content)
            logger.info(
                "Detected CSV structure for %s via %s (%.0f%% confidence)",
                file_name,
                detection.detection_method.value,
                detection.confidence_score,
            )
            result, transactions = CsvImporter().parse_csv(csv_content, file_name, user_id, account, detection)
            result.detection_method = detection.detection_method
            result.detection_confidence = detection.confidence_score

        result.import_session_hash = session_hash

        if transactions:
            descriptions = list(dict.fromkeys(t["description"] for t in transactions))
            enhancer = TransactionEnhancer(session, chat_service=chat_service)
            enhancements = enhancer.enhance_descriptions(descriptions, account, user_id, session_hash)
            result.enhancements = _apply_enhancements(transactions, enhancements, session_hash)

            for transaction in transactions:
                session.add(TransactionModel(**transaction))
            session.commit()

        logger.info(
            "Imported %s transactions for user %s from %s (session %s)",
            result.imported_count,
            user_id,
            file_name,
            session_hash,
        )
        return result
    except Exception as e:
        session.rollback()
        logger.exception("Import failed for %s", file_name)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Import failed: {str(e)}"
        )


@router.post("/enhance", response_model=EnhanceImportResult)
async def enhance_import(
    request: EnhanceImportRequest,
    user_id: str = Depends(get_current_user_id),
    session: Session = Depends(get_session)
):
    enhanced_count = 0

    if request.apply_enhancements:
        transactions = {
            t.id: t
            for t in session.query(TransactionModel).filter(
                TransactionModel.user_id == user_id,
                TransactionModel.import_session_hash == request.import_session_hash,
            ).all()
        }

        for enhancement in request.enhancements:
            if enhancement.confidence_score < request.min_confidence_score:
                continue
            transaction = transactions.get(enhancement.transaction_id)
            if transaction is None:
                continue

            transaction.description = enhancement.enhanced_description[:500]
            if enhancement.suggested_category:
                transaction.category = enhancement.suggested_category[:100]
            enhanced_count += 1

        if enhanced_count:
            session.commit()

    return EnhanceImportResult(
        import_session_hash=request.import_session_hash,
        total_transactions=len(request.enhancements),
        enhanced_count=enhanced_count,
        skipped_count=len(request.enhancements) - enhanced_count,
    )
