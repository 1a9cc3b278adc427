from __future__ import annotations

import typing as t

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from bulkcall.strategies.base import BaseStrategy, Failure, Outcome, Success

log = structlog.get_logger(__name__)


class PresenceStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    subject: str
    status: str | None = None
    last_active: str | None = Field(default=None, alias="lastActive")
    expires_ttl: int | None = Field(default=None, alias="expiresTTL")
    status_code: int | None = Field(default=None, alias="statusCode")
    error_code: int | str | None = Field(default=None, alias="errorCode")
    message: str | None = None

    @property
    def failed(self) -> bool:
        return self.error_code is not None or (
            self.status_code is not None and self.status_code >= 400
        )


class PresenceStrategy(BaseStrategy[str, dict[str, t.Any]]):
    """
    Batch presence lookups into one ``compositions`` call.

    Items are subject (user) ids. The response carries one ``statusList``
    entry per subject, correlated through its ``subject`` field.

    Parameters
    ----------
    base_url : str
        Presence service base URL.
    headers : dict[str, str] | None, optional
        Headers sent with every bulk call, e.g. authorization.
    resource : str, optional
        Bulk resource path relative to ``base_url``.
    client_factory : typing.Callable[[], httpx.AsyncClient] | None, optional
        Factory for the HTTP client used per bulk call.
    """

    name = "presence"

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        resource: str = "compositions",
        client_factory: t.Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Presence base URL cannot be empty")
        self._base_url = base_url.rstrip("/")
        self._headers = dict(headers or {})
        self._resource = resource.strip("/")
        self._client_factory: t.Callable[[], httpx.AsyncClient] = (
            client_factory or (lambda: httpx.AsyncClient(timeout=30.0))
        )

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._resource}"

    def request_fingerprint(self, item: str) -> str:
        if not isinstance(item, str) or not item:
            raise ValueError(f"Presence subject must be a non-empty string, got {item!r}")
        return item

    def response_fingerprint(self, entry: dict[str, t.Any]) -> str:
        return entry["subject"]

    def prepare(self, items: t.Sequence[str]) -> list[str]:
        return list(dict.fromkeys(items))

    async def submit(self, payload: list[str]) -> httpx.Response:
        """
        POST the subject ids to the compositions resource.

        Parameters
        ----------
        payload : list[str]
            Subject ids.

        Returns
        -------
        httpx.Response
            Successful HTTP response.
        """
        log.debug(
            event="Posting presence compositions",
            url=self.url,
            subject_count=len(payload),
        )
        async with self._client_factory() as client:
            response = await client.post(
                url=self.url,
                headers=self._headers,
                json={"subjects": payload},
            )
            response.raise_for_status()
            return response

    def entries(self, response: httpx.Response) -> list[dict[str, t.Any]]:
        body = response.json()
        status_list = body.get("statusList")
        if not isinstance(status_list, list):
            raise ValueError("Presence response has no statusList")
        return status_list

    def classify(self, entry: dict[str, t.Any]) -> Outcome:
        status = PresenceStatus.model_validate(entry)
        if status.failed:
            return Failure(error=status)
        return Success(value=status)
