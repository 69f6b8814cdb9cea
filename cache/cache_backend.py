#!/usr/bin/env python3
from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import time
from typing import Optional

from configs.settings import CacheSettings

logger = logging.getLogger(__name__)


def request_key(prompt: str, *, model_id: str = "") -> str:
	"""Stable cache key for one generation request."""
	digest = hashlib.sha256(f"{model_id}\n{prompt}".encode("utf-8")).hexdigest()
	return digest[:32]


class CacheEntry:
	def __init__(self, key: str, path: str) -> None:
		self.key = key
		self.path = path


class CacheBackend:
	"""Raw generation responses on disk, one JSON file per request key."""

	def __init__(self, settings: Optional[CacheSettings] = None, clock=time.time) -> None:
		self.settings = settings or CacheSettings(enabled=True)
		self.root_dir = self.settings.root_dir
		self.ttl_s = self.settings.ttl_s
		self.atomic = self.settings.atomic_writes
		self._clock = clock

	def key_to_entry(self, key: str) -> CacheEntry:
		return CacheEntry(key, os.path.join(self.root_dir, key.replace("/", "_") + ".json"))

	def get(self, key: str) -> Optional[str]:
		entry = self.key_to_entry(key)
		if not os.path.exists(entry.path):
			return None
		try:
			with open(entry.path, "r", encoding="utf-8") as f:
				data = json.load(f)
			stored_at = float(data["stored_at"])
			response = data["response"]
		except (OSError, ValueError, KeyError, TypeError):
			# Corrupted entry: treat as miss and invalidate
			logger.debug(f"Invalidating unreadable cache entry {key}")
			self.invalidate(key)
			return None
		if self.ttl_s and self._clock() - stored_at > self.ttl_s:
			self.invalidate(key)
			return None
		return response if isinstance(response, str) else None

	def put(self, key: str, response: str) -> None:
		entry = self.key_to_entry(key)
		os.makedirs(self.root_dir, exist_ok=True)
		content = json.dumps({"stored_at": self._clock(), "response": response}, ensure_ascii=False)
		if not self.atomic:
			with open(entry.path, "w", encoding="utf-8") as f:
				f.write(content)
			return
		# Atomic via temp file and rename
		tmp_fd, tmp_path = tempfile.mkstemp(dir=self.root_dir, prefix=".tmp_", suffix=".json")
		with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
			f.write(content)
			f.flush()
			os.fsync(f.fileno())
		os.replace(tmp_path, entry.path)

	def invalidate(self, key: str) -> None:
		entry = self.key_to_entry(key)
		try:
			if os.path.exists(entry.path):
				os.remove(entry.path)
		except OSError as e:
			logger.warning(f"Could not remove cache entry {entry.path}: {e}")
