"""HTTP-проверка доступности тестируемого приложения."""

from __future__ import annotations

import logging

import httpx

from vigil.config import Settings

logger = logging.getLogger(__name__)


class HttpApplicationProbe:
    """Проверка приложения через httpx.

    Реализует протокол :class:`~vigil.clients.base.ApplicationProbe`.
    Сетевые ошибки не пробрасываются: результат проверки — ``False``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        health_path: str = "/api/health",
        timeout: float = 10.0,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._health_path = "/" + health_path.lstrip("/")
        self._http = httpx.AsyncClient(
            timeout=timeout,
            verify=verify,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpApplicationProbe:
        return cls(
            settings.base_url,
            health_path=settings.health_path,
            timeout=settings.probe_timeout,
            verify=settings.ssl_verify,
        )

    async def is_reachable(self) -> bool:
        status = await self._get_status(self._base_url)
        if status is None:
            return False
        if status >= 500:
            logger.warning("Приложение %s отвечает HTTP %d", self._base_url, status)
            return False
        return True

    async def check_health(self) -> bool:
        url = f"{self._base_url}{self._health_path}"
        status = await self._get_status(url)
        if status is None or status >= 400:
            logger.warning("Health-check %s не пройден (статус: %s)", url, status)
            return False
        return True

    async def _get_status(self, url: str) -> int | None:
        try:
            response = await self._http.get(url)
        except httpx.HTTPError as exc:
            logger.debug("GET %s: %s", url, exc)
            return None
        logger.debug("GET %s → HTTP %d", url, response.status_code)
        return response.status_code

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> HttpApplicationProbe:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
