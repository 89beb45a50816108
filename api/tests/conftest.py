import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import app, get_rate_limiter, get_resume_rate_limiter, get_summarizer_client
from providers.rate_limit import InMemoryCounterStore, RateLimiter


def image_bytes(size=(64, 48), fmt="PNG", mode="RGB", noisy=False) -> bytes:
    if noisy:
        # 圧縮しにくいノイズ画像
        noise = Image.effect_noise(size, 64)
        img = Image.merge(
            "RGB", (noise, noise.transpose(Image.Transpose.FLIP_LEFT_RIGHT), noise.point(lambda v: 255 - v))
        )
    else:
        img = Image.new("RGB", size, color=(120, 130, 140))
    if mode != "RGB":
        img = img.convert(mode)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_image():
    return image_bytes


class FakeSummarizerClient:
    def __init__(self, response="This is a generated summary. It has two sentences!", configured=True):
        self.response = response
        self.configured = configured
        self.calls = []

    async def summarize(self, model, inputs, max_length, min_length):
        self.calls.append(
            {"model": model, "inputs": inputs, "max_length": max_length, "min_length": min_length}
        )
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def limiter():
    return RateLimiter(InMemoryCounterStore(window_seconds=3600), limit=5)


@pytest.fixture
def fake_summarizer():
    return FakeSummarizerClient()


@pytest.fixture
def summarizer_client(client, limiter, fake_summarizer):
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_summarizer_client] = lambda: fake_summarizer
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def resume_client(client, limiter):
    app.dependency_overrides[get_resume_rate_limiter] = lambda: limiter
    yield client
    app.dependency_overrides.clear()
