from fastapi import Request

from ..container import Services


def get_services(request: Request) -> Services:
    """
    Engine services for FastAPI routes.
    """
    return request.app.state.services
