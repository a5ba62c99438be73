from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar, cast

from fastapi import HTTPException, status

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


# ---- Custom exceptions ----
class ServiceError(Exception):
    """Base class for service errors."""


class NotAuthenticated(ServiceError):
    pass


class NotFound(ServiceError):
    pass


class MalformedId(NotFound):
    """Identifier is not in a valid format, so it can never resolve."""


class Forbidden(ServiceError):
    pass


class Conflict(ServiceError):
    pass


def translate_service_errors(fn: F) -> F:
    """
    Decorator which translates service exceptions into HTTPExceptions while
    preserving the wrapped function's signature so FastAPI/OpenAPI behave correctly.
    """

    @wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await fn(*args, **kwargs)
        except NotAuthenticated as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=str(e),
                headers={"WWW-Authenticate": "Bearer"},
            )
        except NotFound as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except Forbidden as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
        except Conflict as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
        except ServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return cast(F, wrapper)
