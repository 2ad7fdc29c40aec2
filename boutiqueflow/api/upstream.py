"""Mapping of Heartland client errors to HTTP responses."""

from fastapi import HTTPException

from boutiqueflow.services.heartland import HeartlandAPIError, HeartlandAuthError


def upstream_http_error(error: Exception) -> HTTPException:
    """Translate an exception raised while talking to Heartland.

    Returns:
        401 for rejected credentials, 404 for unknown upstream resources,
        502 for other API errors and 503 when the service is unreachable.
    """
    if isinstance(error, HeartlandAuthError):
        return HTTPException(
            status_code=401,
            detail=f"Heartland authentication failed: {error}",
        )
    if isinstance(error, HeartlandAPIError):
        if error.status_code == 404:
            return HTTPException(status_code=404, detail=f"Not found in Heartland: {error}")
        return HTTPException(status_code=502, detail=f"Heartland API error: {error}")
    return HTTPException(
        status_code=503,
        detail=f"Heartland service unavailable: {error}",
    )
