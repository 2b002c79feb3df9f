from fastapi import Request

from generative.client import GenerativeClient


def get_client(request: Request) -> GenerativeClient:
    """Return the GenerativeClient stored on app state during lifespan."""
    return request.app.state.client
