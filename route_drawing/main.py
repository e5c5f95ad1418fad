# route_drawing/main.py

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from route_drawing.api.v1 import routes_collections, routes_health, routes_places
from route_drawing.core.config import settings
from route_drawing.core.errors import RouteEngineError
from route_drawing.core.logger import logger


async def route_engine_error_handler(request: Request, exc: RouteEngineError) -> JSONResponse:
    """
    Render engine errors as {"error": <code>, "detail": <message>}.
    """
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.code}): {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Interactive taxi route drawing: waypoints are resolved into "
            "road-following polylines and can be moved or removed afterwards."
        ),
    )

    # Routers
    app.include_router(routes_health.router, prefix="", tags=["health"])
    app.include_router(routes_places.router, prefix="", tags=["places"])
    app.include_router(routes_collections.router, prefix="", tags=["collections"])

    app.add_exception_handler(RouteEngineError, route_engine_error_handler)

    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} ({settings.ENVIRONMENT}) ready")
    return app


app = create_app()
