import asyncio

import httpx

from app.services.image_host_service import ImageHostService


def _service(handler, api_key: str = "secret-key") -> ImageHostService:
    return ImageHostService(
        api_key=api_key,
        upload_url="https://imgbb.example/1/upload",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


class TestUpload:
    def test_returns_hosted_url(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.url.params["key"]
            seen["body"] = request.content
            return httpx.Response(200, json={"success": True, "data": {"url": "https://i.ibb.co/x/valve.jpg"}})

        res = asyncio.run(_service(handler).upload(b"\xff\xd8jpeg", "ball valve.jpg"))

        assert res.success
        assert res.url == "https://i.ibb.co/x/valve.jpg"
        assert seen["key"] == "secret-key"
        assert b'name="image"; filename="ball valve.jpg"' in seen["body"]
        assert b"ball valve" in seen["body"]

    def test_missing_key(self) -> None:
        res = asyncio.run(_service(lambda r: httpx.Response(200), api_key="").upload(b"x", "a.jpg"))

        assert res.success is False
        assert "key" in res.error

    def test_non_200(self) -> None:
        res = asyncio.run(_service(lambda r: httpx.Response(400, text="bad")).upload(b"x", "a.jpg"))

        assert res.success is False
        assert "400" in res.error

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        res = asyncio.run(_service(handler).upload(b"x", "a.jpg"))

        assert res.success is False
        assert res.error.startswith("Network error")

    def test_response_without_url(self) -> None:
        res = asyncio.run(_service(lambda r: httpx.Response(200, json={"success": True, "data": {}})).upload(b"x", "a.jpg"))

        assert res.success is False
