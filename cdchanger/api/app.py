"""FastAPI app for the changer: lifespan, CORS and routers."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Set up logging here too so the poll thread's logs show under `uvicorn --reload`
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(name)s: %(message)s",
)

from cdchanger.api.state import AppState, get_state
from cdchanger.config import STATE_PATH, ensure_data_dir

# Routers import the state module, so they come after it
from cdchanger.api.routes import discs, playback, search, spotify

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_data_dir()
    changer = get_state().changer
    changer.start()
    logger.info("Changer ready (state file %s)", STATE_PATH)

    yield

    changer.close()
    logger.info("Changer stopped, pending state written")


app = FastAPI(
    title="CD Changer API",
    description="Five-disc changer on top of Spotify: slots, playback modes, now playing",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/state", tags=["state"])
def get_changer_state(state: AppState = Depends(get_state)):
    """Slots, playback, now playing and the status line in one payload."""
    return state.changer.snapshot()


app.include_router(discs.router, prefix="/api/discs", tags=["discs"])
app.include_router(playback.router, prefix="/api/playback", tags=["playback"])
app.include_router(search.router, prefix="/api/search", tags=["search"])
app.include_router(spotify.router, prefix="/api/spotify", tags=["spotify"])
