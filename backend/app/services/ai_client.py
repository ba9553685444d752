"""
外部 AI 服务客户端（Gemini generateContent）
调用时按轮询使用 API 密钥，失败的密钥上报后换下一个
"""

import json
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from app.core.config import settings
from app.services.api_keys import ApiKeyManager, get_api_key_manager


class AIServiceError(Exception):
    """没有可用的密钥，或所有密钥均调用失败"""


class HttpClientManager:
    _instance: Optional[httpx.AsyncClient] = None

    @classmethod
    def get_client(cls) -> httpx.AsyncClient:
        if cls._instance is None:
            limits = httpx.Limits(
                max_keepalive_connections=settings.HTTPX_MAX_KEEPALIVE_CONNECTIONS,
                max_connections=settings.HTTPX_MAX_CONNECTIONS,
            )
            timeout = httpx.Timeout(settings.HTTPX_TIMEOUT, connect=settings.HTTPX_CONNECT_TIMEOUT)
            cls._instance = httpx.AsyncClient(limits=limits, timeout=timeout, follow_redirects=True)
        return cls._instance

    @classmethod
    async def close(cls):
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


class ExternalAIClient:
    def __init__(
        self,
        key_manager: Optional[ApiKeyManager] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.key_manager = key_manager or get_api_key_manager()
        self._http_client = http_client
        self.model = model or settings.GEMINI_MODEL
        self.base_url = (base_url or settings.GEMINI_API_URL).rstrip("/")

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client or HttpClientManager.get_client()

    def _endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    @staticmethod
    def _body(prompt: str, schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {"responseMimeType": "application/json"}
        if schema:
            generation_config["responseSchema"] = schema
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    @staticmethod
    def _parse(data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
            parsed = json.loads(text)
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
            raise AIServiceError("AI 服务返回了无法解析的结果") from e
        if not isinstance(parsed, dict):
            raise AIServiceError("AI 服务返回的结果不是 JSON 对象")
        return parsed

    async def generate(self, prompt: str, schema: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        生成结构化输出

        Args:
            prompt: 提示词
            schema: 输出 JSON Schema

        Raises:
            AIServiceError: 没有可用的密钥，或所有密钥均失败
        """
        tried = set()
        while True:
            record = await self.key_manager.next_key()
            if record is None or record.id in tried:
                break
            tried.add(record.id)
            try:
                response = await self.http_client.post(
                    self._endpoint(),
                    params={"key": record.key},
                    json=self._body(prompt, schema),
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"AI 服务调用失败 (key_id={record.id}): {type(e).__name__}")
                await self.key_manager.report_failure(record.id)
                continue

            await self.key_manager.mark_used(record.id)
            return self._parse(response.json())

        if not tried:
            logger.error("AI 服务未配置任何可用的 API 密钥")
            raise AIServiceError("AI 服务未配置，请联系管理员")
        raise AIServiceError("AI 服务暂不可用，请稍后重试")
