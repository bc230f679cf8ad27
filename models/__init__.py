from .shop import Shop
from .visit import (
    ExceptionReason,
    VerificationMethod,
    Visit,
    VisitCreate,
    VisitRead,
    VisitStatus,
    VisitUpdate,
)
