import asyncio

import yaml

from services.chiller_server import ChillerServer


def make_server(tmp_path):
    config = {
        'api': {'host': '127.0.0.1', 'port': 0},
        'database': {'backend': 'file', 'path': str(tmp_path / 'db.json')},
        'timers': {'sweep_interval_seconds': 60},
        'auth': {
            'secret': 'test-secret',
            'default_users': [{'username': 'admin', 'password': 'pw', 'role': 'admin'}]
        },
        'dashboard': {'config_path': str(tmp_path / 'dashboard.config.json')},
        'logging': {'level': 'INFO', 'file': None, 'console_output': False},
    }
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump(config))
    return ChillerServer(str(path))


async def test_request_stop_before_serving_is_refused(tmp_path):
    server = make_server(tmp_path)

    assert server.request_stop() is False


async def test_request_stop_ends_serving_and_stop_shuts_down(tmp_path):
    server = make_server(tmp_path)
    serve = asyncio.create_task(server.start())

    for _ in range(200):
        if server._http_server is not None and server._http_server.started:
            break
        await asyncio.sleep(0.01)
    assert server.running is True
    assert server.scheduler.running is True
    assert await server.store.get_user('admin') is not None

    assert server.request_stop() is True
    await asyncio.wait_for(serve, timeout=5)
    await server.stop()

    assert server.running is False
    assert server.scheduler.running is False
