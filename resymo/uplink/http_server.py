import secrets
from typing import Any, Dict, Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from resymo.collectors.base import CollectorError
from resymo.config import HttpServerOptions
from resymo.registry import Registry
from resymo.utils import ConfigError


def _bearer_auth(token: str):
    scheme = HTTPBearer(auto_error=False)

    async def verify(credentials: Optional[HTTPAuthorizationCredentials] = Depends(scheme)) -> None:
        if credentials is None or not secrets.compare_digest(credentials.credentials, token):
            raise HTTPException(
                status_code=401,
                detail='Invalid or missing access token',
                headers={'WWW-Authenticate': 'Bearer realm="api"'},
            )

    return verify


def create_app(registry: Registry, token: Optional[str] = None, logger=None) -> FastAPI:
    """
    Build the pull API. Collect endpoints are served under both `/` and `/api/v1`.
    """
    app = FastAPI(title='ReSyMo Agent')
    dependencies = [Depends(_bearer_auth(token))] if token else []
    router = APIRouter(dependencies=dependencies)

    @app.exception_handler(CollectorError)
    async def collector_error_handler(request: Request, exc: CollectorError) -> JSONResponse:
        if logger:
            logger.warning(f'Collector error on {request.url.path}: {exc.message}')
        return JSONResponse(status_code=500, content={'type': 'CollectorError', 'message': exc.message})

    @app.get('/', response_class=PlainTextResponse)
    async def index() -> str:
        return ''

    @router.get('/collect')
    async def collect_all() -> Dict[str, Any]:
        return await registry.collect_all()

    @router.get('/collect/{name}')
    async def collect(name: str) -> Dict[str, Any]:
        if logger:
            logger.info(f'Collecting: {name}')
        result = await registry.collect_one(name)
        if result is None:
            raise HTTPException(status_code=404, detail=f'Unknown collector: {name}')
        return result

    app.include_router(router)
    app.include_router(router, prefix='/api/v1')
    return app


async def run(options: HttpServerOptions, registry: Registry, logger) -> None:
    if not options.token:
        if options.disable_authentication:
            logger.warning('Running without access token. This is discouraged as it may compromise your system.')
        else:
            raise ConfigError(
                'Running without access token. This is discouraged as it may compromise your system. '
                'If you really want to do it, set "disableAuthentication: true"'
            )

    logger.info(f'  Binding on: [{options.bind_host}]:{options.bind_port}')
    logger.info(f'  TLS - key: {options.tls_key or "<none>"}')
    logger.info(f'  TLS - certificate: {options.tls_certificate or "<none>"}')

    config = uvicorn.Config(
        create_app(registry, token=options.token, logger=logger),
        host=options.bind_host,
        port=options.bind_port,
        ssl_keyfile=options.tls_key,
        ssl_certfile=options.tls_certificate,
        workers=1,
        log_level=logger.getEffectiveLevel(),
    )
    server = uvicorn.Server(config)
    await server.serve()
