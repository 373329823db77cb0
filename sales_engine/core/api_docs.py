from sales_engine.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str]] = {
    400: ("bad_request", "Bad request"),
    404: ("not_found", "Sale not found"),
    409: ("insufficient_stock", "One or more lines failed the stock check"),
    422: ("validation_error", "Validation error"),
    500: ("partial_rollback", "Sale rollback did not complete; contact support"),
    503: ("sale_not_completed", "Sale could not be completed, no changes were made"),
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error"))
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": "/sales",
                            "details": None,
                        }
                    }
                }
            },
        }
    return responses
