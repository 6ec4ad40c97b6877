import logging

from fastapi import FastAPI

from .session import build_practice_session
from .settings import settings
from .routers import health
from .routers import lesson
from .routers import speech
from .routers import practice

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="SvenskaKompis Coach API")
app.include_router(health.router)
app.include_router(lesson.router)
app.include_router(speech.router)
app.include_router(practice.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


@app.on_event("startup")
async def startup_event():
	# Tests may install their own session before startup
	if getattr(app.state, "practice", None) is None:
		app.state.practice = build_practice_session(settings)


@app.on_event("shutdown")
async def shutdown_event():
	practice_session = getattr(app.state, "practice", None)
	if practice_session is not None:
		await practice_session.aclose()
		app.state.practice = None
