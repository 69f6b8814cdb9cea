#!/usr/bin/env python3
from __future__ import annotations

import logging
import os
import tempfile
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class OutputError(Exception):
	def __init__(self, message: str, code: str = "WRITE_FAILED") -> None:
		super().__init__(message)
		self.code = code


class DocumentStore(Protocol):
	def read(self, path: str) -> Optional[str]:
		...

	def write(self, path: str, text: str) -> None:
		...


class FileDocumentStore:
	"""Text documents on the local filesystem; writes are all-or-nothing."""

	def read(self, path: str) -> Optional[str]:
		try:
			with open(path, "r", encoding="utf-8") as f:
				return f.read()
		except FileNotFoundError:
			return None
		except OSError as e:
			raise OutputError(f"Failed to read {path}: {e}", code="READ_FAILED") from e

	def write(self, path: str, text: str) -> None:
		directory = os.path.dirname(os.path.abspath(path))
		try:
			os.makedirs(directory, exist_ok=True)
			tmp_fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp_", suffix=".md")
		except OSError as e:
			raise OutputError(f"Failed to write {path}: {e}", code="WRITE_FAILED") from e
		try:
			with os.fdopen(tmp_fd, "w", encoding="utf-8", newline="") as f:
				f.write(text)
				f.flush()
				os.fsync(f.fileno())
			os.replace(tmp_path, path)
		except OSError as e:
			if os.path.exists(tmp_path):
				os.remove(tmp_path)
			raise OutputError(f"Failed to write {path}: {e}", code="WRITE_FAILED") from e
		logger.debug(f"Wrote {len(text)} chars to {path}")
