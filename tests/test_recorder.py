from aiohttp import web

from netsink.http_server import StaticFileResponse
from netsink.recorder import ResponseRecorder


def make_app(handler):
    app = web.Application()
    app.router.add_get("/", handler)
    return app


def test_defaults():
    recorder = ResponseRecorder()
    assert recorder.status == 200
    assert recorder.size == 0
    assert not recorder.prepared


async def test_counts_streamed_bytes(aiohttp_client):
    recorders = []

    async def handler(request):
        recorder = ResponseRecorder()
        recorders.append(recorder)
        await recorder.prepare(request)
        for chunk in (b"abc", b"", b"defgh"):
            await recorder.write(chunk)
        await recorder.write_eof(b"ij")
        return recorder.response

    client = await aiohttp_client(make_app(handler))
    resp = await client.get("/")

    assert resp.status == 200
    assert await resp.read() == b"abcdefghij"
    assert recorders[0].status == 200
    assert recorders[0].size == 10


async def test_first_status_wins(aiohttp_client):
    recorders = []

    async def handler(request):
        recorder = ResponseRecorder()
        recorders.append(recorder)
        recorder.set_status(202)
        await recorder.prepare(request)
        recorder.set_status(500)
        await recorder.write(b"ok")
        return recorder.response

    client = await aiohttp_client(make_app(handler))
    resp = await client.get("/")

    assert resp.status == 202
    assert recorders[0].status == 202


async def test_send_skips_body_for_head(aiohttp_client):
    recorders = []

    async def handler(request):
        recorder = ResponseRecorder()
        recorders.append(recorder)
        return await recorder.send(request, 418, b"short and stout\n")

    client = await aiohttp_client(make_app(handler))

    resp = await client.get("/")
    assert resp.status == 418
    assert await resp.text() == "short and stout\n"
    assert resp.headers["Content-Type"] == "text/plain; charset=utf-8"
    assert recorders[0].size == 16

    resp = await client.head("/")
    assert resp.status == 418
    assert resp.headers["Content-Length"] == "16"
    assert recorders[1].size == 0


async def test_send_response_adopts_file_response(aiohttp_client, tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"0123456789")
    recorders = []

    async def handler(request):
        recorder = ResponseRecorder()
        recorders.append(recorder)
        return await recorder.send_response(request, StaticFileResponse(path))

    client = await aiohttp_client(make_app(handler))

    resp = await client.get("/")
    assert await resp.read() == b"0123456789"
    assert (recorders[0].status, recorders[0].size) == (200, 10)

    resp = await client.get("/", headers={"Range": "bytes=2-5"})
    assert await resp.read() == b"2345"
    assert (recorders[1].status, recorders[1].size) == (206, 4)

    resp = await client.get("/", headers={"If-None-Match": resp.headers["ETag"]})
    assert resp.status == 304
    assert (recorders[2].status, recorders[2].size) == (304, 0)
