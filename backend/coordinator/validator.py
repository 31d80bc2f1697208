"""
Request Validation

Checks a transaction request for the fields its scenario requires before any
key is generated or anything is written.
"""

import math

from models import TransactionRequest, TransactionScenario, ValidationError


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_transaction_request(request: TransactionRequest) -> None:
    """
    Validate a transaction request.

    Banking payments need a positive amount and a beneficiary. Medical record
    access needs a patient id and an access reason.

    Raises:
        ValidationError: On the first missing or malformed field
    """
    if not isinstance(request.scenario, TransactionScenario):
        raise ValidationError(f"Unsupported scenario: {request.scenario!r}")

    if request.scenario is TransactionScenario.BANKING_PAYMENT:
        if request.amount is None:
            raise ValidationError("Amount is required for a banking payment")
        if not math.isfinite(request.amount) or request.amount <= 0:
            raise ValidationError(f"Amount must be a positive number, got {request.amount}")
        if _blank(request.beneficiary):
            raise ValidationError("Beneficiary is required for a banking payment")
        return

    if _blank(request.patient_id):
        raise ValidationError("Patient id is required for medical record access")
    if _blank(request.access_reason):
        raise ValidationError("Access reason is required for medical record access")
