# stampchat/api/routes/utils.py

from __future__ import annotations

import logging
from contextlib import contextmanager

from fastapi import HTTPException

from stampchat.core.errors import (
    NotFoundError,
    PartialDeleteError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@contextmanager
def store_errors(action: str):
    """
    Translate core errors raised inside a route into HTTP responses.

    Storage failures end the request here; nothing is retried.

        ValidationError     -> 400
        NotFoundError       -> 404
        PartialDeleteError  -> 500 (with what was deleted)
        StorageError        -> 503
    """
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"field": e.field, "reason": e.reason, "message": e.message})
    except NotFoundError as e:
        logger.warning("%s: %s", action, e)
        raise HTTPException(status_code=404, detail=str(e))
    except PartialDeleteError as e:
        logger.error("%s left orphans: %s", action, e)
        raise HTTPException(status_code=500, detail={"message": str(e), "deleted": e.deleted})
    except StorageError as e:
        logger.error("%s failed: %s", action, e)
        raise HTTPException(status_code=503, detail=f"Storage unavailable: {e}")
