from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import Request

from .capabilities import GeminiCapabilities
from .claims import CopyrightClaimResolver
from .ledger import ReputationLedger
from .pipeline import AdmissionPipeline, DuplicateRegistry
from .publisher import NotePublisher
from .settings import Settings
from .storage import build_store
from .storage.base import CatalogStore
from .storage.files import LocalFileStorage, ObjectStorage


@dataclass
class Services:
	store: CatalogStore
	files: ObjectStorage
	pipeline: AdmissionPipeline
	ledger: ReputationLedger
	publisher: NotePublisher
	claims: CopyrightClaimResolver


def build_services(
	cfg: Settings,
	*,
	store: Optional[CatalogStore] = None,
	capabilities: Optional[Any] = None,
	files: Optional[ObjectStorage] = None,
) -> Services:
	"""``capabilities`` must provide classify, assess_quality and generate_study_aids."""
	store = store or build_store(cfg.storage_backend)
	files = files or LocalFileStorage(cfg.upload_dir)
	capabilities = capabilities or GeminiCapabilities(gate_model=cfg.gemini_model_gates, aid_model=cfg.gemini_model)
	ledger = ReputationLedger(store)
	pipeline = AdmissionPipeline(
		capabilities,
		capabilities,
		DuplicateRegistry(store),
		gate_timeout=cfg.gate_timeout_seconds,
	)
	publisher = NotePublisher(pipeline, ledger, files, capabilities, aid_timeout=cfg.gate_timeout_seconds * 2)
	return Services(
		store=store,
		files=files,
		pipeline=pipeline,
		ledger=ledger,
		publisher=publisher,
		claims=CopyrightClaimResolver(store, ledger),
	)


def get_services(request: Request) -> Services:
	return request.app.state.services
