import logging
import os
from datetime import datetime, timezone
from typing import Iterator, List

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storylab.config import StoryLabConfig, load_config
from storylab.entities import (
    GenerateFromUrlRequest,
    GenerateStoriesRequest,
    ImportRequest,
    PreviewRequest,
)
from storylab.errors import InvalidInputError, StoryLabError, UnconfiguredError
from storylab.figma_client import FigmaClient
from storylab.import_service import FrameImporter
from storylab.llm_client import BaseLlmClient, build_llm_client
from storylab.story_service import StoryGenerator

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("storylab_backend")

app = FastAPI(title="Figma Story Lab")

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for dev
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Frames-Total", "X-Frames-Returned", "X-Import-Strategy"],
)


# -----------------------
# Dependencies (one set of clients per request)
# -----------------------

def get_config() -> StoryLabConfig:
    try:
        return load_config()
    except (ValueError, OSError) as e:
        raise UnconfiguredError("Invalid StoryLab configuration", details=str(e)) from e


def get_figma_client(config: StoryLabConfig = Depends(get_config)) -> Iterator[FigmaClient]:
    client = FigmaClient(config)
    try:
        yield client
    finally:
        client.close()


def get_llm_client(config: StoryLabConfig = Depends(get_config)) -> Iterator[BaseLlmClient]:
    llm = build_llm_client(config)
    try:
        yield llm
    finally:
        llm.close()


@app.exception_handler(StoryLabError)
async def storylab_error_handler(request: Request, exc: StoryLabError):
    logger.error(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message} ({exc.details or '-'})")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def _frames_payload(frames) -> List[dict]:
    return [f.model_dump(by_alias=True, mode="json", exclude_none=True) for f in frames]


# -----------------------
# Routes
# -----------------------

@app.post("/import")
def import_frames(
    body: ImportRequest,
    config: StoryLabConfig = Depends(get_config),
    figma: FigmaClient = Depends(get_figma_client),
):
    if not body.file_id:
        raise InvalidInputError("File ID is required")
    try:
        result = FrameImporter(figma, config).import_frames(body.file_id, body.node_id)
    except StoryLabError:
        raise
    except Exception as e:
        logger.exception("Figma import failed")
        raise StoryLabError("Failed to fetch frames from Figma", details=str(e)) from e

    return JSONResponse(
        content=_frames_payload(result.frames),
        headers={
            "X-Frames-Total": str(result.total_found),
            "X-Frames-Returned": str(len(result.frames)),
            "X-Import-Strategy": result.strategy,
        },
    )


@app.post("/preview")
def preview_frames(
    body: PreviewRequest,
    config: StoryLabConfig = Depends(get_config),
    figma: FigmaClient = Depends(get_figma_client),
):
    if not body.file_id:
        raise InvalidInputError("File ID is required")
    try:
        frames = FrameImporter(figma, config).preview(body.file_id, body.limit)
    except StoryLabError:
        raise
    except Exception as e:
        logger.exception("Figma preview failed")
        raise StoryLabError("Failed to fetch frames from Figma", details=str(e)) from e
    return _frames_payload(frames)


@app.get("/health")
def health(llm: BaseLlmClient = Depends(get_llm_client)):
    try:
        healthy = llm.is_healthy()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=500, content={"healthy": False, "error": "Failed to check AI service status"})
    return {
        "healthy": healthy,
        "url": llm.url,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/generate-stories")
def generate_stories(
    body: GenerateStoriesRequest,
    llm: BaseLlmClient = Depends(get_llm_client),
    figma: FigmaClient = Depends(get_figma_client),
):
    try:
        stories = StoryGenerator(llm, figma).generate_for_frames(body.frames, body.context)
    except StoryLabError:
        raise
    except Exception as e:
        logger.exception("Story generation failed")
        raise StoryLabError("Failed to generate user stories", details=str(e)) from e
    return [s.model_dump(by_alias=True, mode="json") for s in stories]


@app.post("/generate-from-url")
def generate_from_url(
    body: GenerateFromUrlRequest,
    llm: BaseLlmClient = Depends(get_llm_client),
    figma: FigmaClient = Depends(get_figma_client),
):
    try:
        return StoryGenerator(llm, figma).generate_from_url(body.figma_url)
    except StoryLabError:
        raise
    except Exception as e:
        logger.exception("Generation from URL failed")
        raise StoryLabError("Internal error", details=str(e)) from e


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
