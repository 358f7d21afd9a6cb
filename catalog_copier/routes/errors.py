"""
Translation of domain errors into HTTP errors.
"""

import logging

from fastapi import HTTPException

from ..processor import (
    AlreadyImported,
    DestinationValidationFailed,
    InvalidConfig,
    PersistenceFailed,
    SourceFetchFailed,
)
from ..shopify import EmptyResult, InvalidUrl, NotFound, ShopifyClientError, UpstreamError

logger = logging.getLogger(__name__)


def http_error(error: Exception) -> HTTPException:
    """Map an exception raised by the core to the matching HTTP status."""
    if isinstance(error, SourceFetchFailed) and error.__cause__ is not None:
        cause = error.__cause__
        if isinstance(cause, InvalidUrl):
            return HTTPException(status_code=400, detail=str(error))
        if isinstance(cause, NotFound):
            return HTTPException(status_code=404, detail=str(error))
        return HTTPException(status_code=502, detail=str(error))

    if isinstance(error, (InvalidUrl, InvalidConfig)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, (NotFound, EmptyResult)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, AlreadyImported):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, DestinationValidationFailed):
        return HTTPException(
            status_code=422,
            detail={
                "message": str(error),
                "user_errors": [str(e) for e in error.user_errors],
                "destination_product_id": error.destination_product_id,
            },
        )
    if isinstance(error, PersistenceFailed):
        return HTTPException(
            status_code=500,
            detail={"message": str(error), "destination_product_id": error.destination_product_id},
        )
    if isinstance(error, (UpstreamError, SourceFetchFailed, ShopifyClientError)):
        return HTTPException(status_code=502, detail=str(error))

    logger.exception("Unhandled error", exc_info=error)
    return HTTPException(status_code=500, detail="Internal error")
