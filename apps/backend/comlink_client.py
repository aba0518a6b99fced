from __future__ import annotations

import json
import logging
import re
from typing import Any

import httpx

import settings
from errors import InvalidInput, UpstreamRejected, UpstreamUnavailable

logger = logging.getLogger(__name__)

SKILL_DEFINITION_SEGMENT = "SkillDefinition"


class ComlinkClient:
    def __init__(self, base_url: str | None = None, access_key: str | None = None, client: httpx.AsyncClient | None = None):
        self.base_url = (base_url or settings.COMLINK_URL).rstrip("/")
        self.access_key = settings.COMLINK_ACCESS_KEY if access_key is None else access_key
        self.http_client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.PLAYER_TIMEOUT_SECONDS, connect=10.0))

    async def aclose(self) -> None:
        await self.http_client.aclose()

    def headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.access_key:
            headers["X-Access-Key"] = self.access_key
        return headers

    async def post(self, pathname: str, body: dict[str, Any], timeout: float) -> Any:
        url = f"{self.base_url}{pathname}"
        try:
            response = await self.http_client.post(url, headers=self.headers(), content=json.dumps(body), timeout=timeout)
        except httpx.TimeoutException as error:
            raise UpstreamUnavailable("Request timed out. Try again.", status=504) from error
        except httpx.HTTPError as error:
            raise UpstreamUnavailable(f"Roster provider unreachable ({error.__class__.__name__}).") from error
        if response.status_code >= 400:
            logger.warning("Roster provider %s answered %s.", pathname, response.status_code)
        if response.status_code >= 500:
            raise UpstreamUnavailable(f"Roster provider error ({response.status_code}).", body=response.text)
        if response.status_code >= 400:
            raise UpstreamRejected.from_status("Roster provider", response.status_code, response.text)
        try:
            return response.json()
        except ValueError as error:
            raise UpstreamUnavailable("Roster provider returned malformed JSON.", body=response.text[:500]) from error

    async def get_player(self, ally_code: str) -> dict[str, Any]:
        data = await self.post("/player", {"payload": {"allyCode": ally_code}, "enums": False}, settings.PLAYER_TIMEOUT_SECONDS)
        if not isinstance(data, dict) or not data:
            raise UpstreamUnavailable("Roster provider returned an empty player payload.")
        return data

    async def get_metadata(self) -> dict[str, Any]:
        data = await self.post("/metadata", {}, settings.METADATA_TIMEOUT_SECONDS)
        return data if isinstance(data, dict) else {}

    async def get_localization(self, version: str) -> Any:
        return await self.post("/localization", {"payload": {"id": f"{version}:{settings.LOCALIZATION_LOCALE}"}, "unzip": True}, settings.BUNDLE_TIMEOUT_SECONDS)

    async def get_game_data(self, version: str, items: str = SKILL_DEFINITION_SEGMENT) -> dict[str, Any]:
        body = {"payload": {"version": version, "includePvpMeta": False, "requestSegment": 0, "items": items}, "enums": False}
        data = await self.post("/data", body, settings.BUNDLE_TIMEOUT_SECONDS)
        return data if isinstance(data, dict) else {}


def normalize_ally_code(raw: Any) -> str:
    code = re.sub(r"[^0-9]", "", raw if isinstance(raw, str) else str(raw or ""))
    if not re.fullmatch(r"[0-9]{9}", code):
        raise InvalidInput("Invalid ally code format.")
    return code
