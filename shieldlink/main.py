import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends, BackgroundTasks, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import RedirectResponse, HTMLResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from . import models, schemas, database, settings, pages, channel
from .service import ShieldService
from .shield import cloak
from .shield.classifier import Verdict
from .shield.codec import normalize_destination
from .shield.errors import LinkNotFound
from .shield.recorder import ClickActionRecord, write_shield_action
from .shield.session import SessionState
from .utils.logging_config import setup_logging

setup_logging(settings.LOG_LEVEL, json_format=settings.LOG_JSON)
logger = logging.getLogger(__name__)

# Codec, recorder, latch and live sessions shared by every visit
shield = ShieldService.from_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.init_models()
    yield
    await shield.shutdown()
    await database.engine.dispose()

app = FastAPI(title="Shield Link", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        settings.FRONTEND_URL
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def is_reserved(slug: str) -> bool:
    return slug.lower().startswith("admin") or slug.lower() in settings.RESERVED_SLUGS

def not_found() -> HTMLResponse:
    return HTMLResponse(content=pages.not_found_page(), status_code=404)


# Background bookkeeping for the link-serving layer
async def track_click(request: Request, link_id: int):
    user_agent = request.headers.get("user-agent", "").lower()
    device_type = "Desktop"
    if "mobile" in user_agent: device_type = "Mobile"
    elif "tablet" in user_agent or "ipad" in user_agent: device_type = "Tablet"

    async with database.async_session() as db:
        db.add(models.Click(link_id=link_id, referer=request.headers.get("referer"), user_agent=user_agent, device_type=device_type))
        await db.execute(update(models.Link).where(models.Link.id == link_id).values(clicks=models.Link.clicks + 1))
        await db.commit()

async def track_view(link_id: int):
    async with database.async_session() as db:
        await db.execute(update(models.Link).where(models.Link.id == link_id).values(views=models.Link.views + 1))
        await db.commit()


@app.get("/api/links/shield/{slug}", response_model=schemas.ShieldLinkInfo)
async def get_shield_link(slug: str, db: AsyncSession = Depends(database.get_db)):
    try:
        link = await shield.load_link(db, slug)
    except LinkNotFound:
        raise HTTPException(status_code=404, detail="Link not found")
    return schemas.ShieldLinkInfo(
        id=link.id,
        slug=link.slug,
        title=link.title,
        shield_enabled=link.shield_enabled,
        is_ultra_link=link.is_ultra_link,
        shield_config=link.config.to_wire(),
    )

@app.post("/api/analytics/shield-action")
async def record_shield_action(
    data: schemas.ShieldActionCreate,
    request: Request,
    db: AsyncSession = Depends(database.get_db)
):
    res = await db.execute(select(models.Link.id).where(models.Link.id == data.link_id))
    if res.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="Link not found")

    record = ClickActionRecord(data.link_id, data.action, data.is_bot, context=channel.visit_context(request.headers))
    await write_shield_action(db, record)
    await db.commit()
    return {"success": True}


@app.websocket("/s/{slug}/ws")
async def shield_channel(websocket: WebSocket, slug: str):
    await websocket.accept()
    try:
        hello = schemas.ChannelHello.model_validate(await channel.receive_message(websocket))
    except WebSocketDisconnect:
        return
    except ValidationError:
        await websocket.close(code=1008)
        return

    async with database.async_session() as db:
        try:
            link = await shield.load_link(db, slug)
        except LinkNotFound:
            await websocket.send_json({"type": "state", "state": SessionState.NOT_FOUND.value, "remaining": 0})
            await websocket.close()
            return

    outbox: asyncio.Queue = asyncio.Queue()
    orchestrator = shield.open_session(
        link,
        hello.payload,
        navigator=channel.ChannelNavigator(outbox),
        listener=lambda change: outbox.put_nowait(channel.update_message(change)),
        context=channel.visit_context(websocket.headers),
    )
    writer = None
    try:
        probe = hello.probe.to_probe() if hello.probe else None
        orchestrator.start(websocket.headers.get("user-agent"), probe)
        if orchestrator.state is SessionState.CLOAKED:
            await channel.flush(websocket, outbox)
            await websocket.close()
            return

        writer = asyncio.create_task(channel.pump(websocket, outbox))
        while True:
            data = await channel.receive_message(websocket)
            try:
                message = schemas.ChannelMessage.model_validate({"message": data}).message
            except ValidationError:
                logger.debug("Ignoring malformed channel message on %s", slug)
                continue
            if isinstance(message, schemas.InteractionMessage):
                orchestrator.observe(message.kind)
            else:
                await orchestrator.proceed()
    except WebSocketDisconnect:
        logger.debug("Channel for %s closed in state %s", slug, orchestrator.state.value)
    finally:
        shield.release(orchestrator)
        if writer is not None:
            writer.cancel()


@app.get("/{slug}")
async def open_link(slug: str, request: Request, background_tasks: BackgroundTasks, db: AsyncSession = Depends(database.get_db)):
    if is_reserved(slug):
        return not_found()

    try:
        link = await shield.load_link(db, slug)
    except LinkNotFound:
        return not_found()

    # Unprotected: straight through, no classification and no countdown
    if not link.shield_enabled:
        if link.password_protected:
            return RedirectResponse(url=f"{settings.FRONTEND_URL}/unlock/{slug}")
        background_tasks.add_task(track_click, request, link.id)
        return RedirectResponse(url=normalize_destination(link.destination))

    # Decided before any payload is attached to the document
    verdict = shield.page_verdict(request.headers.get("user-agent"))
    if link.is_ultra_link and verdict is Verdict.BOT:
        return HTMLResponse(content=cloak.render(link.redacted()))

    if link.password_protected:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/unlock/{slug}")

    payload = shield.issue_payload(link)
    background_tasks.add_task(track_view, link.id)
    response = HTMLResponse(content=pages.gate_page(link, payload, channel=f"/s/{slug}/ws"))
    response.headers["Cache-Control"] = "no-store"
    if link.is_ultra_link:
        response.headers["Referrer-Policy"] = "no-referrer"
    return response
