from functools import wraps

from .response import APIResponse


def user_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        user = getattr(request, "user", None)
        if user is None or not getattr(user, "is_authenticated", False):
            return APIResponse.unauthorized()
        if not user.is_active:
            return APIResponse.unauthorized(message="Account suspended")
        return view_func(request, *args, **kwargs)
    return wrapper
