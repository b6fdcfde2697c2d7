"""
Development server for the build directory.

Serves static files from the Artifact Store with:
- Proper MIME types (especially for .mjs, .wasm, .map)
- index.html for directories, path traversal rejected
- A live-reload client injected into every HTML page
- A websocket at /__reload; reload() tells every open page to refresh
"""

import mimetypes
import re
from pathlib import Path
from typing import Optional, Set

from aiohttp import WSMsgType, web

from gamebuild.logging import get_logger

log = get_logger('server')

mimetypes.add_type('application/javascript', '.js')
mimetypes.add_type('application/javascript', '.mjs')
mimetypes.add_type('application/json', '.map')
mimetypes.add_type('application/wasm', '.wasm')

RELOAD_PATH = '/__reload'
RELOAD_MESSAGE = 'reload'

RELOAD_CLIENT = f'''<script>
(function() {{
  var proto = location.protocol === 'https:' ? 'wss://' : 'ws://';
  var ws = new WebSocket(proto + location.host + '{RELOAD_PATH}');
  ws.onmessage = function(event) {{
    if (event.data === '{RELOAD_MESSAGE}') {{ location.reload(); }}
  }};
}})();
</script>
'''

_BODY_END_RE = re.compile(r'</body\s*>', re.IGNORECASE)


def inject_reload_client(html: str) -> str:
    """Insert the reload client before </body>, or append it."""
    match = None
    for match in _BODY_END_RE.finditer(html):
        pass
    if match is None:
        return html + RELOAD_CLIENT
    return html[:match.start()] + RELOAD_CLIENT + html[match.start():]


@web.middleware
async def no_cache_middleware(request, handler):
    """Browsers must always pick up the freshly built files."""
    response = await handler(request)
    # Websocket responses are already prepared (headers sent).
    if not response.prepared:
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
    return response


class DevServer:
    """
    Serves root over HTTP and pushes reload messages over a websocket.

    Args:
        root: Directory to serve (the build directory)
        host: Interface to bind
        port: Port to bind (0 picks a free port)
    """

    def __init__(self, root: Path, host: str = 'localhost', port: int = 3000):
        self.root = Path(root)
        self.host = host
        self.port = port
        self._sockets: Set[web.WebSocketResponse] = set()
        self._runner: Optional[web.AppRunner] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    @property
    def client_count(self) -> int:
        return len(self._sockets)

    async def serve_file(self, request: web.Request) -> web.StreamResponse:
        """Serve a file, a directory's index.html, or 404."""
        path = request.match_info.get('path', '')
        root = self.root.resolve()
        try:
            file_path = (root / path).resolve()
        except (ValueError, RuntimeError):
            return web.Response(status=400, text='Invalid path')

        if file_path != root and root not in file_path.parents:
            return web.Response(status=403, text='Forbidden')

        if file_path.is_dir():
            file_path = file_path / 'index.html'

        if not file_path.is_file():
            return web.Response(status=404, text='Not found')

        if file_path.suffix.lower() in ('.html', '.htm'):
            html = file_path.read_text(encoding='utf-8', errors='replace')
            return web.Response(text=inject_reload_client(html), content_type='text/html')

        return web.FileResponse(file_path)

    async def reload_socket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._sockets.add(ws)
        log.debug("Reload client connected (%d total)", len(self._sockets))
        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    log.debug("Reload socket error: %s", ws.exception())
        finally:
            self._sockets.discard(ws)
        return ws

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[no_cache_middleware])
        app.router.add_get(RELOAD_PATH, self.reload_socket)
        app.router.add_get('/', self.serve_file)
        app.router.add_get('/{path:.*}', self.serve_file)
        return app

    async def reload(self) -> int:
        """
        Tell every connected page to reload.

        Returns:
            Number of clients notified
        """
        notified = 0
        for ws in list(self._sockets):
            if ws.closed:
                self._sockets.discard(ws)
                continue
            try:
                await ws.send_str(RELOAD_MESSAGE)
                notified += 1
            except ConnectionError:
                self._sockets.discard(ws)
        log.info("Reloading %d browser(s)", notified)
        return notified

    async def start(self) -> None:
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()

        if self.port == 0 and self._runner.addresses:
            self.port = self._runner.addresses[0][1]

        log.info("Dev server on %s", self.url)
        log.info("Serving files from: %s", self.root)

    async def stop(self) -> None:
        for ws in list(self._sockets):
            await ws.close()
        self._sockets.clear()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None


async def serve(root: Path, host: str = 'localhost', port: int = 3000) -> DevServer:
    """Start a DevServer for root and return it."""
    server = DevServer(root, host, port)
    await server.start()
    return server


async def reload(server: DevServer) -> int:
    return await server.reload()
