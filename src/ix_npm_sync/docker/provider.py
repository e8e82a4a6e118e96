from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

import docker
from docker.errors import DockerException

from ..configmanager import ConfigManager
from ..models import ContainerEvent, ContainerRecord
from ..models.container import COMPOSE_PROJECT_LABEL

logger = ConfigManager.get_logger(__name__)

_STREAM_END = object()


class ContainerProvider(Protocol):
    async def list_containers(self, *, project: str | None = None) -> list[ContainerRecord]: ...

    async def get_container(self, container_id: str) -> ContainerRecord | None: ...

    def events(self) -> AsyncIterator[ContainerEvent]: ...

    def close(self) -> None: ...


class DockerProviderError(RuntimeError):
    pass


class DockerProvider:
    """Container listings and start events from the local Docker daemon.

    Uses the Python Docker SDK (`docker` module) via `docker.from_env()`.
    Respects the DOCKER_HOST environment variable; if not set, connects to
    the local Docker socket (unix:///var/run/docker.sock on Unix systems).

    The SDK is blocking, so calls run in a worker thread and the event generator
    is pumped into an `asyncio.Queue`.
    """

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        if client is None:
            try:
                client = docker.from_env()
            except DockerException as e:
                raise DockerProviderError("Failed to initialize Docker client from environment") from e
        self._client = client
        self._streams: list[Any] = []

    async def list_containers(self, *, project: str | None = None) -> list[ContainerRecord]:
        label = COMPOSE_PROJECT_LABEL if project is None else f"{COMPOSE_PROJECT_LABEL}={project}"
        return await self._list({"label": [label]})

    async def get_container(self, container_id: str) -> ContainerRecord | None:
        found = await self._list({"id": [container_id]})
        return found[0] if found else None

    async def _list(self, filters: Mapping[str, list[str]]) -> list[ContainerRecord]:
        try:
            raw = await asyncio.to_thread(self._client.api.containers, filters=dict(filters))
        except DockerException as e:
            raise DockerProviderError(f"Failed to list docker containers ({e})") from e
        return [ContainerRecord.from_docker(item) for item in raw if isinstance(item, Mapping)]

    async def events(self) -> AsyncIterator[ContainerEvent]:
        """Container start events, from now on. Ends when the daemon closes the stream."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        try:
            stream = self._client.api.events(decode=True, filters={"type": "container", "event": "start"})
        except DockerException as e:
            raise DockerProviderError(f"Failed to subscribe to docker events ({e})") from e
        self._streams.append(stream)

        def _put(item: Any) -> None:
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, item)

        def _pump() -> None:
            try:
                for raw in stream:
                    _put(raw)
            except Exception as e:
                # Closing the stream from the loop side also lands here.
                logger.debug("Docker event stream stopped (%s)", str(e))
            finally:
                _put(_STREAM_END)

        pump = loop.run_in_executor(None, _pump)
        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    logger.info("Docker event stream closed")
                    return
                if isinstance(item, Mapping):
                    yield ContainerEvent.from_docker(item)
        finally:
            stream.close()
            if stream in self._streams:
                self._streams.remove(stream)
            pump.cancel()

    def close(self) -> None:
        for stream in list(self._streams):
            stream.close()
        self._streams.clear()
        self._client.close()
