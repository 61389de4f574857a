import httpx
import pytest

from shotsets.entities import Blob, ScreenshotFile, ScreenshotSet
from shotsets.errors import TransportError
from shotsets.gateway import HttpGateway, encode_collection
from shotsets.model import ScreenshotsModel
from shotsets.server import create_app


def test_encode_collection_shape(png):
    blob_a = Blob("a.png", "image/png", data=png)
    blob_b = Blob("b.png", "image/png", data=png)
    collection = [
        ScreenshotSet(id="ss_1", name="Kept", files={
            "aplite": ScreenshotFile(id="sf_1"),
            "basalt": ScreenshotFile(id="sf_2", pending_blob=blob_a),
            "chalk": ScreenshotFile(is_new=True),
        }),
        ScreenshotSet(id="ss_2", name="Emptied", files={"aplite": ScreenshotFile(is_new=True)}),
        ScreenshotSet(name="", files={"chalk": ScreenshotFile(pending_blob=blob_b)}),
    ]
    screenshots, blobs = encode_collection(collection)
    assert screenshots == [
        {"id": "ss_1", "name": "Kept", "files": {"aplite": {"id": "sf_1"}, "basalt": {"id": "sf_2", "uploadId": 0}}},
        {"name": "", "files": {"chalk": {"uploadId": 1}}},
    ]
    assert blobs == [blob_a, blob_b]


def asgi_gateway(project="gw"):
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app()), base_url="http://testserver")
    return HttpGateway("http://testserver", project, client=client), client


@pytest.mark.anyio
async def test_model_round_trip_through_backend(png, png_other):
    gateway, client = asgi_gateway()
    async with client:
        model = ScreenshotsModel("roundtrip", gateway)
        await model.load_screenshots()
        assert model.get_screenshots() == []

        await model.add_uploaded_files(
            [Blob("a.png", "image/png", data=png), Blob("b.png", "image/png", data=png_other)], None, "aplite"
        )
        model.set_name(0, "Login")
        await model.save()

        shots = model.get_screenshots()
        assert [s.name for s in shots] == ["Login", ""]
        assert all(s.id for s in shots)
        first_file = shots[0].files["aplite"]
        assert first_file.id and not first_file.is_new
        assert first_file.src.startswith(f"/api/screenshots/files/{first_file.id}?")
        r = await client.get(first_file.src)
        assert r.content == png

        # Replace one image in place, delete the other set's only image
        await model.add_uploaded_files([Blob("c.png", "image/png", data=png_other)], 0, "aplite")
        model.delete_file(1, "aplite")
        await model.save()

        (shot,) = model.get_screenshots()
        assert shot.files["aplite"].id == first_file.id
        r = await client.get(f"/api/screenshots/files/{first_file.id}")
        assert r.content == png_other


@pytest.mark.anyio
async def test_server_rejection_becomes_transport_error(png):
    gateway, client = asgi_gateway()
    async with client:
        with pytest.raises(TransportError, match="unknown screenshot set"):
            await gateway.save("rejected", [ScreenshotSet(id="ss_ghost", name="x", files={"aplite": ScreenshotFile(id="sf_ghost")})])


@pytest.mark.anyio
async def test_connection_failure_becomes_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    gateway = HttpGateway("http://backend.invalid", "p1", client=client)
    async with client:
        with pytest.raises(TransportError, match="connection refused"):
            await gateway.load("t1")


@pytest.mark.anyio
async def test_model_reports_unreachable_backend(record):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    model = ScreenshotsModel("t1", HttpGateway("http://backend.invalid", "p1", client=client))
    rec = record(model)
    async with client:
        await model.load_screenshots()
        model.set_name(0, "nothing to rename")
        await model.save()
    assert [args[0].error_for for name, args in rec.calls if name == "error"] == ["get screenshots", "save screenshots"]
    assert not model.busy


def serving(body):
    def handler(request):
        return httpx.Response(200, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.anyio
@pytest.mark.parametrize("body", [
    ["not", "a", "dict"],
    {"screenshots": None},
    {"screenshots": ["oops"]},
    {"screenshots": [{"name": "x", "files": {"aplite": "sf_1"}}]},
])
async def test_malformed_load_becomes_transport_error(body, record):
    client = serving(body)
    async with client:
        gateway = HttpGateway("http://backend.invalid", "p1", client=client)
        with pytest.raises(TransportError, match="Invalid response"):
            await gateway.load("t1")

        model = ScreenshotsModel("t1", gateway)
        rec = record(model)
        await model.load_screenshots()
    assert rec.names() == ["error"]
    assert rec.last("error")[0].error_for == "get screenshots"


@pytest.mark.anyio
async def test_unreadable_upload_fails_save_cleanly(tmp_path):
    gateway, client = asgi_gateway()
    async with client:
        shot = ScreenshotSet(files={"aplite": ScreenshotFile(pending_blob=Blob.from_path(tmp_path / "gone.png"))})
        with pytest.raises(TransportError, match="could not read gone.png"):
            await gateway.save("unreadable", [shot])
