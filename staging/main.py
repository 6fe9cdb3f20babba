import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from staging.config import CORS_ORIGINS, LOG_LEVEL
from staging.database import init_db
from staging.routes import match_order, schedule, standings

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Racket Staging API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Standings (live view + persisted recalculation)
app.include_router(standings.router, tags=["standings"])

# Match ordering and the categorized order view
app.include_router(match_order.router, tags=["match-order"])

# Auto-schedule and manual overrides
app.include_router(schedule.router, tags=["schedule"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Registered %d routes", len(app.routes))


@app.get("/staging/health")
def health_check():
    return {"app_name": "Racket Staging API", "status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
