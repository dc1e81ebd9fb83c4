"""
Shared fixtures: a simulated chiller controller served by aiohttp and a
temporary JSON store
"""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from database.file_store import JsonFileStore
from devices import ChillerController, DeviceHttpClient


def _decode_write(params):
    """Recover (name, value) from any of the write parameter shapes"""
    if 'name' in params:
        return params['name'], params.get('value', params.get('val', ''))
    if 'id' in params:
        return params['id'], params.get('value', '')
    if 'var' in params:
        return params['var'], params.get('val', '')
    if len(params) == 1:
        return next(iter(params.items()))
    return None


class FakeChiller:
    """In-process controller exposing getvar.csv, vars.htm and setvar.csv endpoints"""

    def __init__(self, variables=None, write_paths=('/setvar.csv',), serve_csv=True):
        self.variables = dict(variables or {})
        self.write_paths = set(write_paths)
        self.serve_csv = serve_csv
        self.requests = []
        self.writes = []
        self.headers = []
        # write_hook(name, value) returns the value to store, or None to ignore the write
        self.write_hook = None
        self.server = None

    @property
    def ip(self):
        return f"127.0.0.1:{self.server.port}"

    async def start(self):
        app = web.Application()
        app.router.add_route('*', '/{tail:.*}', self._handle)
        self.server = TestServer(app, host='127.0.0.1')
        await self.server.start_server()

    async def stop(self):
        if self.server is not None:
            await self.server.close()

    def render_csv(self):
        lines = ['name,id,desc,type,access,val']
        for i, (name, value) in enumerate(self.variables.items(), start=1):
            lines.append(f'"{name}",{i},"{name} value",REAL,RW,"{value}"')
        return '\n'.join(lines) + '\n'

    def render_html(self):
        rows = ''.join(
            f'<tr><td>{i}</td><td>{name}</td><td>desc</td><td>{value}</td></tr>'
            for i, (name, value) in enumerate(self.variables.items(), start=1)
        )
        return (
            '<html><body><table id="varsTable">'
            '<thead><tr><th>#</th><th>Name</th><th>Desc</th><th>Value</th></tr></thead>'
            f'<tbody>{rows}</tbody></table></body></html>'
        )

    def apply_write(self, name, value):
        self.writes.append((name, value))
        stored = self.write_hook(name, value) if self.write_hook else value
        if stored is not None:
            self.variables[name] = stored

    async def _handle(self, request):
        self.requests.append((request.method, request.path))
        self.headers.append(dict(request.headers))
        if request.method == 'GET' and request.path == '/getvar.csv' and self.serve_csv:
            return web.Response(text=self.render_csv(), content_type='text/csv')
        if request.method == 'GET' and request.path == '/vars.htm':
            return web.Response(text=self.render_html(), content_type='text/html')
        if request.path in self.write_paths:
            if request.method == 'GET':
                params = dict(request.query)
            else:
                params = dict(await request.post())
            pair = _decode_write(params)
            if pair is None:
                return web.Response(status=400)
            self.apply_write(*pair)
            return web.Response(text='OK')
        return web.Response(status=404)


@pytest.fixture
async def fake_chiller():
    """Factory starting simulated controllers; all are stopped after the test"""
    devices = []

    async def start(**kwargs):
        device = FakeChiller(**kwargs)
        await device.start()
        devices.append(device)
        return device

    yield start

    for device in devices:
        await device.stop()


@pytest.fixture
def controller():
    return ChillerController(
        client=DeviceHttpClient(read_timeout=2, write_timeout=2),
        settle_seconds=0,
        unlock_settle_seconds=0
    )


@pytest.fixture
async def store(tmp_path):
    file_store = JsonFileStore(str(tmp_path / "db.json"))
    await file_store.initialize()
    yield file_store
    await file_store.close()
