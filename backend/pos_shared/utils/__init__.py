"""
Utilities module: exceptions, money arithmetic, schemas.
"""

from pos_shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
)
from pos_shared.utils.money import apply_bps, round_to_whole_unit, allocate_pro_rata
from pos_shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
    # money
    "apply_bps",
    "round_to_whole_unit",
    "allocate_pro_rata",
    # schemas
    "ErrorResponse",
]
