"""
SocialBridge API
================
FastAPI surface bridging a web app to Instagram, X and a temporary file host.

- POST /file               re-host a file at a public temporary URL
- GET  /instagram/message  read allowed direct-message threads
- POST /instagram/peek     browse a user's posts (or one post by shortcode)
- POST /instagram/post     publish a single post or carousel
- GET  /instagram/forward  republish clips received by DM as reels
- POST /x/post             post a tweet with optional media
- Observability: request IDs + per-request access log + JSON errors

Credentials come from the environment and are checked per request; a missing
credential fails that request, it never blocks boot.
"""

import os
import time
import uuid
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from connectors.errors import (
    ConnectorError,
    CredentialsMissingError,
    error_from_exception,
    get_http_status,
)
from connectors import staging
from connectors import x_post
from connectors.direct_messages import get_direct_messages
from connectors.forward import forward_clips
from connectors.instagram_publish import InstagramPublisher
from connectors.instagram_session import IG_SESSION_PATH, FileSessionStore, InstagramSession
from connectors.models import MediaObject, PostRequest, PostType
from connectors.peek import peek, peek_post

# ============================================================
# Logging
# ============================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger("socialbridge")

# ============================================================
# Configuration from Environment
# ============================================================

APP_VERSION = "1.0.0"

ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*")

# Credentials are re-read per request by the connectors; these names are only
# used to report what is configured.
INSTAGRAM_GRAPH_ENV = ("IG_ACCESS_TOKEN",)
INSTAGRAM_SESSION_ENV = ("IG_USERNAME", "IG_PASSWORD")
X_ENV = ("X_API_KEY", "X_API_SECRET", "X_ACCESS_TOKEN", "X_ACCESS_TOKEN_SECRET")

# ============================================================
# Helpers
# ============================================================

def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def _configured(names) -> bool:
    return all(os.environ.get(n) for n in names)


def configured_platforms() -> Dict[str, bool]:
    return {
        "instagram_publish": _configured(INSTAGRAM_GRAPH_ENV),
        "instagram_session": _configured(INSTAGRAM_SESSION_ENV),
        "x": _configured(X_ENV),
    }

# ============================================================
# Pydantic Models
# ============================================================
# Fields are optional so missing values reach the route's own 400 handling
# instead of FastAPI's 422.

class FileUploadRequest(BaseModel):
    url: Optional[str] = None


class MediaObjectIn(BaseModel):
    url: str
    type: Literal["IMAGE", "VIDEO"] = "IMAGE"


class InstagramPostRequest(BaseModel):
    media: Optional[List[MediaObjectIn]] = None
    postType: Optional[Literal["IMAGE", "VIDEO", "REELS", "STORIES", "CAROUSEL"]] = None
    caption: Optional[str] = None


class PeekRequest(BaseModel):
    username: Optional[str] = None
    filter: str = "all"
    limit: int = 0
    postId: Optional[str] = None


class TweetIn(BaseModel):
    text: Any = None
    mediaUrl: Any = None

# ============================================================
# Dependencies
# ============================================================

def get_instagram_session() -> InstagramSession:
    return InstagramSession(store=FileSessionStore(IG_SESSION_PATH))


def get_instagram_publisher() -> InstagramPublisher:
    return InstagramPublisher()

# ============================================================
# FastAPI App + Middleware
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = [name for name, ok in configured_platforms().items() if not ok]
    if missing:
        logger.warning(f"Credentials not configured for: {', '.join(missing)}")
    yield

app = FastAPI(title="SocialBridge API", version=APP_VERSION, lifespan=lifespan)

origins = _split_origins(ALLOWED_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

@app.middleware("http")
async def request_id_and_logging(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid

    start = time.time()
    status_code = 500

    try:
        response = await call_next(request)
        status_code = response.status_code
    except Exception as e:
        logger.exception(f"[RID:{rid}] Unhandled exception: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "request_id": rid},
            headers={"X-Request-ID": rid},
        )
    finally:
        duration_ms = int((time.time() - start) * 1000)
        ip = request.client.host if request.client else "unknown"
        logger.info(f"rid={rid} ip={ip} {request.method} {request.url.path} status={status_code} dur_ms={duration_ms}")

    response.headers["X-Request-ID"] = rid
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response

# ============================================================
# Health & Status
# ============================================================

@app.get("/")
async def root():
    return {"message": "SocialBridge API", "status": "running"}

@app.get("/health")
async def health():
    return {
        "status": "ok",
        "version": APP_VERSION,
        "platforms": configured_platforms(),
        "staging_host": staging.STAGING_UPLOAD_URL,
    }

# ============================================================
# Files
# ============================================================

@app.post("/file")
async def upload_file(data: FileUploadRequest):
    if not data.url:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "URL is required", "details": "Body must include a url"},
        )
    try:
        file_url = await staging.stage(data.url)
    except Exception as e:
        logger.error(f"File upload error: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to upload file", "details": str(e)},
        )
    return {"success": True, "file": file_url, "message": "File uploaded successfully to temporary host"}

# ============================================================
# Instagram
# ============================================================

@app.get("/instagram/message")
async def instagram_messages(
    limit: int = Query(10, ge=1),
    type: Literal["all", "clip"] = Query("all"),
    session: InstagramSession = Depends(get_instagram_session),
):
    try:
        threads = await get_direct_messages(session, limit=limit, kind=type)
    except Exception as e:
        logger.error(f"Instagram message read failed: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    return [t.to_dict() for t in threads]

@app.post("/instagram/peek")
async def instagram_peek(data: PeekRequest, session: InstagramSession = Depends(get_instagram_session)):
    try:
        if data.postId:
            return (await peek_post(session, data.postId)).to_dict()
        items = await peek(session, data.username, filter=data.filter, limit=data.limit)
    except Exception as e:
        logger.error(f"Instagram peek failed: {e}")
        return JSONResponse(status_code=500, content={"message": str(e)})
    return [m.to_dict() for m in items]

@app.post("/instagram/post")
async def instagram_post(data: InstagramPostRequest, publisher: InstagramPublisher = Depends(get_instagram_publisher)):
    if not data.media or not data.postType:
        return JSONResponse(status_code=400, content={"message": "media and postType are required"})

    request = PostRequest(
        media=[MediaObject.from_dict({"url": m.url, "type": m.type}) for m in data.media],
        post_type=PostType(data.postType),
        caption=data.caption,
    )
    try:
        return await publisher.publish_request(request)
    except Exception as e:
        err = error_from_exception(e, component="instagram")
        logger.error(f"Instagram publish failed: {err.to_dict()}")
        return JSONResponse(status_code=500, content={"message": err.message})

@app.get("/instagram/forward")
async def instagram_forward(
    session: InstagramSession = Depends(get_instagram_session),
    publisher: InstagramPublisher = Depends(get_instagram_publisher),
):
    try:
        results = await forward_clips(session, publisher)
    except Exception as e:
        err = error_from_exception(e, component="instagram")
        logger.error(f"Instagram forward failed: {err.to_dict()}")
        return JSONResponse(status_code=500, content={"error": "Failed to forward clips", "details": err.message})
    return {"message": "ok", "results": results}

# ============================================================
# X
# ============================================================

@app.post("/x/post")
async def x_post_tweet(data: TweetIn):
    try:
        result = await x_post.post_tweet(data.text, data.mediaUrl)
    except ConnectorError as e:
        status = get_http_status(e.code)
        if isinstance(e, CredentialsMissingError):
            error = "X API configuration error"
        elif status == 401:
            error = "X API authentication failed"
        elif status == 429:
            error = "Rate limit exceeded"
        elif status == 400:
            error = e.message
        else:
            status, error = 500, "Failed to post tweet"
        logger.error(f"Error in X post API: {e.to_dict()}")
        return JSONResponse(status_code=status, content={"error": error, "details": e.message})
    except Exception as e:
        logger.exception(f"Error in X post API: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to post tweet"})

    return {"success": True, "data": result.to_dict()}

@app.get("/x/post")
async def x_post_usage():
    return {"message": "X Post API endpoint - use POST method to post tweets"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
