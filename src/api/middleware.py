import logging
import time

from aiohttp import web
from pydantic import ValidationError

from src.domain.exceptions import NotFoundError, StorageError


def json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in error.errors()
    )


def access_log_middleware(logger: logging.Logger):
    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        start = time.monotonic()
        response = await handler(request)
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(f"[{request.method}] {request.path} {response.status} {elapsed_ms:.0f}ms")
        return response

    return middleware


def error_middleware(logger: logging.Logger):
    """Maps domain and validation failures to `{"error": message}` responses."""

    @web.middleware
    async def middleware(request: web.Request, handler) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException as e:
            if e.status < 400:
                raise
            return json_error(e.status, e.reason)
        except ValidationError as e:
            logger.warning(f"{request.method} {request.path} - Invalid payload: {e.error_count()} error(s)")
            return json_error(400, _describe(e))
        except NotFoundError as e:
            logger.debug(f"{request.method} {request.path} - {e}")
            return json_error(404, str(e))
        except StorageError as e:
            logger.error(f"{request.method} {request.path} - Database error: {e}")
            return json_error(500, str(e))

    return middleware
