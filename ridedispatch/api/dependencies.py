"""FastAPI dependency injection helpers."""

from fastapi import Request

from ridedispatch.services.container import DispatchServices


def get_services(request: Request) -> DispatchServices:
    """The service graph built at startup."""
    return request.app.state.services
