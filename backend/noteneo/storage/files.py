from __future__ import annotations
import os
import re
from pathlib import Path
from typing import Protocol

from fastapi.concurrency import run_in_threadpool

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
	base = os.path.basename(name or "") or "upload"
	return _UNSAFE.sub("_", base)[:128]


class ObjectStorage(Protocol):
	async def store(self, data: bytes, path: str) -> str: ...


class LocalFileStorage:
	"""Writes uploads below ``root`` and returns the URL they are served at."""

	def __init__(self, root: str, url_prefix: str = "/files") -> None:
		self.root = Path(root).resolve()
		self.url_prefix = url_prefix.rstrip("/")

	def _write(self, data: bytes, path: str) -> str:
		parts = [safe_filename(p) for p in path.split("/") if p and p not in (".", "..")]
		target = self.root.joinpath(*parts)
		target.parent.mkdir(parents=True, exist_ok=True)
		with open(target, "wb") as f:
			f.write(data)
		return f"{self.url_prefix}/{'/'.join(parts)}"

	async def store(self, data: bytes, path: str) -> str:
		return await run_in_threadpool(self._write, data, path)
