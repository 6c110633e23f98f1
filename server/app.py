"""
server/app.py

HTTP surface of the proxy (aiohttp):
- GET  /health         -> HealthResponse
- POST /execute-batch  -> BatchResponse, or a structured error payload
"""
import logging
from typing import Optional

from aiohttp import web

from config.proxy_config import ProxyConfig
from coordinator.poller import BatchPoller
from coordinator.reader import CoordinatorReader
from coordinator.verifier import CoordinatorVerifier
from executor.batch_executor import BatchExecutor
from executor.errors import InternalError, InvalidQueryError, ProxyError
from executor.methods import MethodExecutor
from executor.types import BatchRequest
from ingestion.rpc.client import SolanaRpcClient
from .health import HealthResponse

logger = logging.getLogger(__name__)

EXECUTOR_KEY = web.AppKey("executor", BatchExecutor)
POLLER_KEY = web.AppKey("poller", object)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "*",
    "Access-Control-Allow-Headers": "*",
}


def error_response(error: ProxyError) -> web.Response:
    if error.http_status >= 500:
        logger.error(f"[server] {error.message}")
    else:
        logger.warning(f"[server] Rejected request ({error.reason}): {error.message}")
    return web.json_response(error.to_payload(), status=error.http_status)


async def health_check(request: web.Request) -> web.Response:
    executor = request.app[EXECUTOR_KEY]
    rpc_healthy = await executor.check_health()
    return web.json_response(HealthResponse.from_probe(rpc_healthy).to_dict())


async def execute_batch(request: web.Request) -> web.Response:
    executor = request.app[EXECUTOR_KEY]
    try:
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidQueryError(f"malformed JSON body: {e}")

        batch_request = BatchRequest.from_dict(body)
        response = await executor.execute_batch(batch_request)
    except ProxyError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"[server] Unhandled error in execute-batch: {e}")
        return error_response(InternalError(str(e)))

    return web.json_response(response.to_dict())


async def preflight(request: web.Request) -> web.Response:
    return web.Response(headers=CORS_HEADERS)


@web.middleware
async def cors_middleware(request: web.Request, handler):
    response = await handler(request)
    response.headers.update(CORS_HEADERS)
    return response


def build_app(executor: BatchExecutor, poller: Optional[BatchPoller] = None) -> web.Application:
    """Wire handlers around an already-built executor (and optional poller)."""
    app = web.Application(middlewares=[cors_middleware])
    app[EXECUTOR_KEY] = executor
    app[POLLER_KEY] = poller

    app.router.add_get("/health", health_check)
    app.router.add_post("/execute-batch", execute_batch)
    app.router.add_route("OPTIONS", "/{tail:.*}", preflight)

    if poller is not None:
        app.on_startup.append(_start_poller)
    app.on_cleanup.append(_shutdown_executor)
    return app


async def _start_poller(app: web.Application) -> None:
    poller = app[POLLER_KEY]
    poller.start()
    logger.info(f"[server] Batch poller started (interval={poller.poll_interval_ms}ms)")


async def _shutdown_executor(app: web.Application) -> None:
    app[EXECUTOR_KEY].shutdown()


def create_app(config: ProxyConfig) -> web.Application:
    """Build the full service from configuration."""
    rpc_client = SolanaRpcClient(config.rpc_url, timeout=config.rpc_timeout_sec)
    reader = CoordinatorReader.from_rpc_client(rpc_client, program_id=config.program_id)
    verifier = CoordinatorVerifier(reader, verify_query_hashes=config.verify_query_hashes)

    executor = BatchExecutor(
        MethodExecutor(rpc_client),
        verifier=verifier,
        max_batch_size=config.max_batch_size,
        max_workers=config.executor_workers,
    )

    poller = None
    if config.enable_poller:
        poller = BatchPoller(reader, poll_interval_ms=config.poll_interval_ms)

    return build_app(executor, poller)
