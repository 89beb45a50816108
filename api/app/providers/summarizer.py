# providers/summarizer.py

import asyncio
import logging

from aiohttp import ClientError, ClientSession, ClientTimeout, TCPConnector

from config import config
from utils.utils import setup_trace


# 推論APIの呼び出しに失敗した
class SummarizerError(RuntimeError):
    pass


# HuggingFace Inference API の summarization タスクを呼び出すクライアント
class SummarizerClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = config.HF_INFERENCE_URL,
        timeout_seconds: float = config.SUMMARIZER_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def summarize(
        self, model: str, inputs: str, max_length: int, min_length: int
    ) -> str:
        url = f"{self.base_url}/models/{model}"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "inputs": inputs,
            "parameters": {"max_length": max_length, "min_length": min_length},
        }

        connector = TCPConnector(limit=config.CONN_LIMIT)
        try:
            async with ClientSession(
                trace_configs=setup_trace(),
                connector=connector,
                timeout=ClientTimeout(total=self.timeout_seconds),
            ) as session:
                async with session.post(url, headers=headers, json=payload) as response:
                    if response.status != 200:
                        body = await response.text()
                        error_msg = f"Inference request failed for {model}: status={response.status}, body={body[:200]}"
                        logging.error(error_msg)
                        raise SummarizerError(error_msg)
                    data = await response.json(content_type=None)
        except (ClientError, asyncio.TimeoutError) as e:
            raise SummarizerError(f"Model {model} is not available: {e}") from e

        return extract_summary_text(data)


def extract_summary_text(data) -> str:
    # レスポンスは配列とオブジェクトの両方の形がある
    if isinstance(data, list):
        data = data[0] if data else {}
    if isinstance(data, dict):
        return data.get("summary_text") or ""
    return ""
