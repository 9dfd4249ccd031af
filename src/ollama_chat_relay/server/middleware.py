"""aiohttp middlewares: CORS headers and the last-resort error boundary."""

import structlog
from aiohttp import web

logger = structlog.get_logger()

_PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=_PREFLIGHT_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers["Access-Control-Allow-Origin"] = "*"
        raise
    # Event streams set their own headers before the body starts
    if not response.prepared:
        response.headers["Access-Control-Allow-Origin"] = "*"
    return response


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn anything a handler did not handle into a 500 JSON response."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception("unhandled_error", method=request.method, path=request.path)
        return web.json_response(
            {"error": "Internal server error", "details": str(e)},
            status=500,
        )
