from rest_framework.exceptions import ParseError

from .response import APIResponse


def parse_json_body(request):
    """Return ``(data, error_response)``; exactly one of them is None."""
    try:
        data = request.data
    except ParseError:
        return None, APIResponse.validation_error(message="Invalid JSON body")

    if data is None or data == "":
        return {}, None
    if not hasattr(data, "get"):
        return None, APIResponse.validation_error(message="JSON body must be an object")
    return data, None


def query_param(request, *names, default=None):
    # UI sends both camelCase and snake_case keys
    for name in names:
        value = request.query_params.get(name)
        if value not in (None, ""):
            return value
    return default


def body_value(data, *names, default=None):
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def get_actor(request):
    from core.services.scope_service import Actor
    return Actor.from_user(request.user)


def get_page_params(request, default_per_page=20):
    page = request.query_params.get('page', 1)
    per_page = request.query_params.get('per_page', default_per_page)
    try:
        return int(page), int(per_page)
    except (TypeError, ValueError):
        return 1, default_per_page
