"""Content addressing for duplicate and piracy detection.

The digest is a content-similarity heuristic: two uploads with the same
fingerprint are treated as the same note. It is computed over the raw bytes
of an image, or over a text surrogate built from the title and filename for
documents whose bytes are not inspected. Callers must build the surrogate
with :func:`document_surrogate` both when verifying and when publishing.
"""
from __future__ import annotations
import hashlib
from typing import Union

IMAGE_MIME_PREFIX = "image/"


def is_image(mime_type: str | None) -> bool:
	return (mime_type or "").lower().startswith(IMAGE_MIME_PREFIX)


def document_surrogate(title: str, filename: str) -> str:
	return f"Note Analysis. Title: {(title or '').strip()}. Filename: {(filename or '').strip()}"


def fingerprint(content: Union[bytes, str]) -> str:
	if isinstance(content, str):
		content = content.encode("utf-8")
	return hashlib.sha256(bytes(content)).hexdigest()


def upload_content(data: bytes, mime_type: str | None, title: str, filename: str) -> Union[bytes, str]:
	"""Image bytes, or the surrogate for documents. Gates and fingerprint both see this."""
	if is_image(mime_type):
		return data
	return document_surrogate(title, filename)


def fingerprint_upload(data: bytes, mime_type: str | None, title: str, filename: str) -> str:
	return fingerprint(upload_content(data, mime_type, title, filename))
