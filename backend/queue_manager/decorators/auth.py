from functools import wraps
from flask_jwt_extended import verify_jwt_in_request
from queue_manager.services.policy import has_permissions, deny


def require_permissions(*codes: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not has_permissions(*codes):
                deny(codes)
            return fn(*args, **kwargs)
        return wrapper
    return outer
