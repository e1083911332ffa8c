from fastapi import Request

from transcribomatic.services import ProxyServices


def get_services(request: Request) -> ProxyServices:
    """Dependency returning the services attached to the running app."""
    return request.app.state.services
