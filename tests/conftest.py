"""Shared fixtures for the PIN gate tests."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from photolab.secure_store import MemorySecureStore, SecureStoreError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class CountingStore(MemorySecureStore):
    """Memory store that records every call."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__(initial)
        self.calls: List[tuple] = []

    async def get(self, key: str) -> Optional[str]:
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        self.calls.append(("set", key))
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        await super().delete(key)

    @property
    def writes(self) -> int:
        return sum(1 for name, _ in self.calls if name == "set")


class GatedStore(MemorySecureStore):
    """Memory store whose reads block until ``release()``."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__(initial)
        self.gate = asyncio.Event()
        self.gate.set()

    def hold(self) -> None:
        self.gate.clear()

    def release(self) -> None:
        self.gate.set()

    async def get(self, key: str) -> Optional[str]:
        await self.gate.wait()
        return await super().get(key)


class FailingStore(MemorySecureStore):
    """Memory store whose selected operations raise."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, *, fail_get: bool = False,
                 fail_set: bool = False, fail_delete: bool = False) -> None:
        super().__init__(initial)
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.fail_delete = fail_delete

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise SecureStoreError("read failed")
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_set:
            raise SecureStoreError("write failed")
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        if self.fail_delete:
            raise SecureStoreError("delete failed")
        await super().delete(key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
