"""
aiohttp application: WebSocket endpoint at ``/`` and a JSON status page at
``/status``.
"""
import asyncio
import logging

from aiohttp import WSMsgType, web

from print_bridge.jobs.models import utcnow
from print_bridge.server.context import ServerContext
from print_bridge.server.handlers import list_printers
from print_bridge.server.router import MessageRouter

logger = logging.getLogger(__name__)

CONTEXT_KEY = web.AppKey('context', ServerContext)
ROUTER_KEY = web.AppKey('router', MessageRouter)


def welcome_event(version: str) -> dict:
    return {'event': 'welcome', 'data': {'version': version, 'time': utcnow().isoformat()}}


async def websocket_handler(request: web.Request) -> web.WebSocketResponse:
    context = request.app[CONTEXT_KEY]
    router = request.app[ROUTER_KEY]

    ws = web.WebSocketResponse(heartbeat=30)
    await ws.prepare(request)
    connection = context.registry.register(ws, request.remote)
    tasks = set()

    try:
        await router.send(connection, welcome_event(context.version))
        async for msg in ws:
            if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                if context.serialize_jobs:
                    await router.dispatch(connection, msg.data)
                else:
                    task = asyncio.create_task(router.dispatch(connection, msg.data))
                    tasks.add(task)
                    task.add_done_callback(tasks.discard)
            elif msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket error from {connection.ip}: {ws.exception()}")
    finally:
        context.registry.unregister(connection)
        if tasks:
            # jobs already handed to the spooler still finish; their responses are dropped
            await asyncio.gather(*list(tasks), return_exceptions=True)

    return ws


async def status_handler(request: web.Request) -> web.Response:
    context = request.app[CONTEXT_KEY]
    try:
        printers = [p.to_dict() for p in await list_printers(context)]
    except Exception as e:
        logger.warning(f"Status page could not enumerate printers: {e}")
        printers = []
    return web.json_response({
        'status': 'running',
        'version': context.version,
        'clients': context.registry.count(),
        'printers': printers,
        'recentJobs': [job.to_dict() for job in context.tracker.recent()],
    })


async def _on_shutdown(app: web.Application):
    context = app[CONTEXT_KEY]
    for connection in context.registry.all():
        await connection.transport.close(code=1001, message=b'Server shutdown')
    context.registry.clear()


def create_app(context: ServerContext) -> web.Application:
    app = web.Application()
    app[CONTEXT_KEY] = context
    app[ROUTER_KEY] = MessageRouter(context)
    app.router.add_get('/', websocket_handler)
    app.router.add_get('/status', status_handler)
    app.on_shutdown.append(_on_shutdown)
    return app


async def run_server(context: ServerContext, host: str = '127.0.0.1', port: int = 20000):
    """Serve until cancelled."""
    runner = web.AppRunner(create_app(context))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as e:
        await runner.cleanup()
        raise RuntimeError(f"Could not listen on {host}:{port}: {e}") from e

    logger.info(f"✓ Print bridge listening on ws://{host}:{port}/")
    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down...")
        await runner.cleanup()
