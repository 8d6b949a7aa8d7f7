import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, WebSocket, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder

from ridesafe.auth.dependencies import principal_from_token
from ridesafe.auth.identity import Principal
from ridesafe.database import SessionLocal
from ridesafe.models.user import UserProfile
from ridesafe.realtime.sync import SyncCallbacks, SyncSession

router = APIRouter(tags=['sync'])

logger = logging.getLogger(__name__)


def authenticate(token: str, admin: bool = False) -> Principal | None:
    db = SessionLocal()
    try:
        principal = principal_from_token(token, db)
        if admin:
            admin_profile = db.query(UserProfile).filter(
                UserProfile.email == principal.email,
                UserProfile.role == 'admin',
                UserProfile.email_verified.is_(True),
            ).first()
            if admin_profile is None:
                return None
        return principal
    except HTTPException:
        return None
    finally:
        db.close()


async def stream_updates(websocket: WebSocket, queue: asyncio.Queue) -> None:
    """Forward queued payloads until the client goes away."""
    receiver = asyncio.ensure_future(websocket.receive_text())
    getter = asyncio.ensure_future(queue.get())
    try:
        while True:
            done, _pending = await asyncio.wait({receiver, getter}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                await websocket.send_json(getter.result())
                getter = asyncio.ensure_future(queue.get())
            if receiver in done:
                if receiver.exception() is not None:
                    break
                receiver = asyncio.ensure_future(websocket.receive_text())
    finally:
        receiver.cancel()
        getter.cancel()


def queue_pusher(queue: asyncio.Queue):
    loop = asyncio.get_running_loop()

    def push(payload: dict) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, jsonable_encoder(payload))

    return push


@router.websocket('/ws/user')
async def user_updates(websocket: WebSocket, token: str = Query(...)):
    principal = await run_in_threadpool(authenticate, token)
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    push = queue_pusher(queue)
    session = SyncSession(websocket.app.state.change_feed)
    callbacks = SyncCallbacks(
        on_user_data_update=lambda profile: push({'event': 'user_data_update', 'data': profile}),
        on_admission_status_change=lambda email, admission_status: push(
            {'event': 'admission_status_change', 'email': email, 'status': admission_status}
        ),
        on_change_request_update=lambda email, request: push(
            {'event': 'change_request_update', 'email': email, 'data': request}
        ),
    )
    try:
        # Subscribing runs the initial snapshot queries.
        await run_in_threadpool(session.subscribe_user, principal.email, callbacks)
        await stream_updates(websocket, queue)
    finally:
        session.close()
        logger.info('Closed user sync session for %s.', principal.email)


@router.websocket('/ws/admin')
async def admin_updates(websocket: WebSocket, token: str = Query(...)):
    principal = await run_in_threadpool(authenticate, token, admin=True)
    if principal is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    queue: asyncio.Queue = asyncio.Queue()
    push = queue_pusher(queue)
    session = SyncSession(websocket.app.state.change_feed)
    callbacks = SyncCallbacks(on_admin_action=lambda action: push({'event': 'admin_action', **action}))
    try:
        await run_in_threadpool(session.subscribe_admin, callbacks)
        await stream_updates(websocket, queue)
    finally:
        session.close()
        logger.info('Closed admin sync session for %s.', principal.email)
