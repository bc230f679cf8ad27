from fastapi import HTTPException, status

# Domain errors raised by the visit services. They are HTTPExceptions so FastAPI
# renders them directly as {"detail": {"code": ..., "message": ...}}.


class DomainError(HTTPException):
    code = "error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        self.message = message
        super().__init__(
            status_code=self.http_status,
            detail={"code": self.code, "message": message},
        )


# Shop or visit missing, or owned by another tenant
class NotFoundError(DomainError):
    code = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


# State-guarded operation on a visit that is no longer ongoing
class InvalidStateError(DomainError):
    code = "invalid_state"
    http_status = status.HTTP_409_CONFLICT


class ForbiddenError(DomainError):
    code = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN


class ValidationError(DomainError):
    code = "validation_error"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
