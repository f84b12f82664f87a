"""Lazily created, shared aiobotocore clients."""

from __future__ import annotations

from typing import Any, ClassVar

from aiobotocore.session import AioSession

from .exceptions import InfrastructureError


class AioClientManager:
    """One aiobotocore client per manager, opened on first use.

    Subclasses name the AWS service and the error raised when the client
    cannot be created.
    """

    service_name: ClassVar[str]
    error: ClassVar[type[InfrastructureError]] = InfrastructureError

    def __init__(
        self,
        region_name: str = "us-east-1",
        *,
        session: AioSession | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._region = region_name
        self._session = session or AioSession()
        self._client_kwargs = client_kwargs
        self._client: Any = None
        self._client_cm: Any = None

    async def get_client(self) -> Any:
        if self._client is None:
            try:
                self._client_cm = self._session.create_client(
                    self.service_name,
                    region_name=self._region,
                    **self._client_kwargs,
                )
                self._client = await self._client_cm.__aenter__()
            except Exception as e:
                self._client_cm = None
                raise self.error(
                    f"Failed to create {self.service_name} client: {e}"
                ) from e
        return self._client

    async def close(self) -> None:
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None
