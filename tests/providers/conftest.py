"""
A local aiohttp server that answers provider requests from a script.
"""

from collections import defaultdict
from typing import Any, Dict, List, Tuple

import pytest
from aiohttp import test_utils, web


class ScriptedServer:
    """Replies from a per-path queue; the last reply repeats."""

    def __init__(self) -> None:
        self.replies: Dict[str, List[Tuple[int, Any]]] = defaultdict(list)
        self.requests: List[Tuple[str, Dict[str, Any]]] = []
        self.headers: List[Dict[str, str]] = []
        self.base_url = ""

    def reply(self, path: str, body: Any, status: int = 200) -> None:
        self.replies[path].append((status, body))

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.path, await request.json()))
        self.headers.append(dict(request.headers))
        queue = self.replies[request.path]
        status, body = queue.pop(0) if len(queue) > 1 else queue[0]
        return web.json_response(body, status=status)


@pytest.fixture
async def server():
    scripted = ScriptedServer()
    app = web.Application()
    app.router.add_post("/{tail:.*}", scripted.handle)
    http_server = test_utils.TestServer(app)
    await http_server.start_server()
    scripted.base_url = str(http_server.make_url("/"))
    yield scripted
    await http_server.close()
