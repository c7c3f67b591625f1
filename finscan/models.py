"""Data models for FinScan."""

from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    """Direction of money movement."""

    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class DocumentType(str, Enum):
    """Kinds of financial document accepted for upload."""

    BANK_STATEMENT = "BANK_STATEMENT"
    INVOICE = "INVOICE"
    RECEIPT = "RECEIPT"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    """Processing status of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


# Allowed forward moves; ERROR is terminal
_STATUS_TRANSITIONS: dict[DocumentStatus, set[DocumentStatus]] = {
    DocumentStatus.PENDING: {DocumentStatus.PROCESSING, DocumentStatus.ERROR},
    DocumentStatus.PROCESSING: {DocumentStatus.COMPLETED, DocumentStatus.ERROR},
    DocumentStatus.COMPLETED: set(),
    DocumentStatus.ERROR: set(),
}


class InvalidStatusTransition(Exception):
    """Raised when a document status would move backwards or leave a terminal state."""

    pass


class RawScanResult(BaseModel):
    """Text and self-reported confidence from a single OCR invocation."""

    text: str
    confidence: float = Field(ge=0, le=100)

    model_config = {"frozen": True}


class User(BaseModel):
    """Owner of documents, categories and transactions."""

    id: UUID = Field(default_factory=uuid4)
    email: str
    name: str | None = None


class Category(BaseModel):
    """A per-user transaction category. (user_id, name) is unique."""

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str
    type: TransactionType = TransactionType.EXPENSE


class Transaction(BaseModel):
    """A validated, persistable financial transaction."""

    id: UUID = Field(default_factory=uuid4)
    date: date
    description: str = Field(min_length=1, max_length=255)
    amount: float = Field(ge=0, allow_inf_nan=False)
    type: TransactionType
    category_id: UUID
    user_id: UUID
    document_id: UUID | None = None
    is_placeholder: bool = False  # Synthesized when nothing could be extracted

    class Config:
        from_attributes = True


class Document(BaseModel):
    """An uploaded document and the transactions it owns."""

    id: UUID = Field(default_factory=uuid4)
    file_name: str
    file_type: str
    file_size: int
    document_type: DocumentType = DocumentType.OTHER
    status: DocumentStatus = DocumentStatus.PENDING
    user_id: UUID | None = None
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    transactions: list[Transaction] = Field(default_factory=list)

    def transition_to(self, status: DocumentStatus) -> None:
        """Move to a new status, enforcing PENDING -> PROCESSING -> {COMPLETED, ERROR}."""
        if status == self.status:
            return
        if status not in _STATUS_TRANSITIONS[self.status]:
            raise InvalidStatusTransition(f"Cannot move document {self.id} from {self.status.value} to {status.value}")
        self.status = status


class UploadRequest(BaseModel):
    """A received upload, validated before the pipeline runs."""

    file_name: str = Field(min_length=1)
    mime_type: str
    contents: bytes
    document_type: DocumentType = DocumentType.OTHER

    @field_validator("file_name")
    @classmethod
    def strip_file_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("File name must not be blank")
        return value

    @property
    def file_size(self) -> int:
        return len(self.contents)


class AnalysisResult(BaseModel):
    """Top-level LLM extraction response. Transactions stay untyped until validated."""

    transactions: list[Any]
    summary: dict[str, Any] = Field(default_factory=dict)


class AnalysisPayload(BaseModel):
    """Analysis section of the upload response."""

    summary: dict[str, Any]
    transactions: list[Transaction]


class ProcessingResult(BaseModel):
    """Outcome of a successful (possibly degraded) pipeline run."""

    document: Document
    analysis: AnalysisPayload
    warnings: list[str] = Field(default_factory=list)
    degraded: bool = False  # Document stored without its transactions
    placeholder_used: bool = False  # No real transaction could be extracted


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    document_count: int
    transaction_count: int
