from fastapi import Request

from .container import Services
from .users import current_active_user, optional_active_user


def get_services(request: Request) -> Services:
    return request.app.state.services


__all__ = ["get_services", "current_active_user", "optional_active_user"]
