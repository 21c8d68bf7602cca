# Remote collaborators - async HTTP client that normalizes responses into canonical models
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from errors import NetworkError, RequestTimeout
from models import DevelopmentSnapshot, PregnancyRecord, default_pregnancy_record

logger = logging.getLogger(__name__)

# snake_case spellings some responses use for the same fields
_RECORD_ALIASES = {
    "current_week": "currentWeek",
    "due_date": "dueDate",
    "user_id": "userId",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}
_SNAPSHOT_ALIASES = {
    "key_developments": "keyDevelopments",
    "fun_fact": "funFact",
    "image_description": "imageDescription",
    "lang": "language",
}
_COMBINED_ALIASES = {
    "pregnancy_data": "pregnancyData",
    "baby_development": "babyDevelopment",
}


def _canonical(data: Dict[str, Any], aliases: Dict[str, str]) -> Dict[str, Any]:
    """Rename snake_case keys to their camelCase form; camelCase wins when both are present"""
    result = dict(data)
    for snake, camel in aliases.items():
        if snake in result:
            value = result.pop(snake)
            result.setdefault(camel, value)
    return result


def parse_pregnancy_record(data: Any) -> PregnancyRecord:
    if not isinstance(data, dict):
        raise NetworkError(f"Unexpected pregnancy payload: {data!r}")
    data = _canonical(data, _RECORD_ALIASES)
    data.pop("provenance", None)  # provenance is client-only, never trusted from the wire
    try:
        return PregnancyRecord.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise NetworkError(f"Malformed pregnancy payload: {e}") from e


def parse_development_snapshot(data: Any, week: int, language: str) -> Optional[DevelopmentSnapshot]:
    if not isinstance(data, dict):
        return None
    data = _canonical(data, _SNAPSHOT_ALIASES)
    data.setdefault("week", week)
    data.setdefault("language", language)
    try:
        return DevelopmentSnapshot.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Ignoring malformed development payload for week %s: %s", week, e)
        return None


class PregnancyApiClient:
    """Client for the stage-update, pregnancy and baby-development endpoints"""

    def __init__(
        self,
        base_url: str,
        timeout: float = 25.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"{method} {path} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        if not response.is_success:
            raise NetworkError(
                f"{response.request.method} {response.request.url.path} returned {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Invalid JSON from {response.request.url.path}") from e

    async def update_stage_with_development(
        self,
        stage_type: str,
        stage_value: str,
        language: str = "en",
    ) -> Tuple[PregnancyRecord, Optional[DevelopmentSnapshot]]:
        """POST /stage-update-with-development -> (record, snapshot or None)"""
        response = await self._request(
            "POST",
            "/stage-update-with-development",
            json={"stageType": stage_type, "stageValue": stage_value, "language": language},
        )
        body = self._json(response)
        if not isinstance(body, dict):
            raise NetworkError(f"Unexpected stage update payload: {body!r}")
        body = _canonical(body, _COMBINED_ALIASES)
        # Some deployments answer with the bare record
        record_data = body.get("pregnancyData", body)
        record = parse_pregnancy_record(record_data)
        snapshot = parse_development_snapshot(body.get("babyDevelopment"), record.currentWeek, language)
        return record, snapshot

    async def get_pregnancy(self) -> PregnancyRecord:
        """GET /pregnancy; a 404 reads as the week-1 default"""
        response = await self._request("GET", "/pregnancy")
        if response.status_code == 404:
            return default_pregnancy_record()
        return parse_pregnancy_record(self._json(response))

    async def get_baby_development(self, week: int, language: str = "en") -> DevelopmentSnapshot:
        response = await self._request("GET", f"/baby-development/{week}", params={"lang": language})
        snapshot = parse_development_snapshot(self._json(response), week, language)
        if snapshot is None:
            raise NetworkError(f"Malformed development payload for week {week}")
        return snapshot

    async def aclose(self) -> None:
        await self._client.aclose()
