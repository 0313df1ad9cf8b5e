from __future__ import annotations
import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .db import Base, engine, ensure_schema
from .settings import settings
from .services import Services, build_services
from .routers import health
from .routers import auth
from .routers import notes
from .routers import profiles

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
	app = FastAPI(title="NoteNeo API")
	app.include_router(health.router)
	app.include_router(auth.router)
	app.include_router(notes.router)
	app.include_router(profiles.router)

	# Uploaded files written by LocalFileStorage
	app.mount("/files", StaticFiles(directory=settings.upload_dir, check_dir=False), name="files")

	if services is not None:
		app.state.services = services

	@app.get("/info")
	def info():
		return {
			"status": "ok",
			"gemini_configured": bool(settings.gemini_api_key),
			"storage_backend": settings.storage_backend,
		}

	@app.on_event("startup")
	async def startup_event():
		# Auth tables live in the SQL database whichever catalog store is used
		Base.metadata.create_all(bind=engine)
		try:
			ensure_schema()
		except Exception as exc:
			logger.warning("schema migration skipped: %s", exc)
		os.makedirs(settings.upload_dir, exist_ok=True)
		if getattr(app.state, "services", None) is None:
			app.state.services = build_services(settings)
		logger.info("NoteNeo API started (storage=%s)", settings.storage_backend)

	@app.on_event("shutdown")
	async def shutdown_event():
		services = getattr(app.state, "services", None)
		if services is not None:
			await services.store.close()

	return app


app = create_app()
