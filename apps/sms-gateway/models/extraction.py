from pydantic import BaseModel
from typing import Optional, Dict, Any


class ExtractedTransaction(BaseModel):
    """Structured view of a transaction notification. Every field is optional."""
    provider: Optional[str] = None
    txn_type: Optional[str] = None  # credit, debit, cashout, payment, fee, unknown
    amount: Optional[float] = None
    currency: Optional[str] = None
    balance: Optional[float] = None
    counterparty: Optional[str] = None
    counterparty_phone_suffix: Optional[str] = None
    reference: Optional[str] = None
    txn_id: Optional[str] = None
    ft_id: Optional[str] = None
    fee: Optional[float] = None
    fee_currency: Optional[str] = None
    transaction_time_raw: Optional[str] = None  # verbatim text from the message
    transaction_time: Optional[str] = None  # derived from transaction_time_raw
    wallet: Optional[str] = None
    confidence: Optional[float] = None
    notes: Optional[str] = None


class ExtractionResult(BaseModel):
    fields: ExtractedTransaction
    model_used: str
    raw: Dict[str, Any] = {}  # model output before coercion
