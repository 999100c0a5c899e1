from __future__ import annotations

import json
import logging
import uuid
from typing import Any, NoReturn

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import ValidationError

from .devices.base import FailureKind, InvalidArgument, ProcessFailure
from .models import (
    ChannelMapModel,
    DeviceInfoModel,
    DeviceModel,
    MonitorCommand,
    OkResponse,
    ProgramModel,
    SetChannelMapRequest,
    SetChannelRequest,
    TunerStatusModel,
    TuneResponse,
)
from .monitor import idle_status_payload
from .state import AppState

logger = logging.getLogger(__name__)

router = APIRouter()


def get_state(request: Request) -> AppState:
    state: AppState | None = getattr(request.app.state, "app_state", None)
    if state is None:
        raise RuntimeError("AppState not initialized")
    return state


def auth_check(request: Request, state: AppState = Depends(get_state)) -> None:
    token = state.config.server.auth_token
    if token is None:
        return
    auth = request.headers.get("authorization")
    if not auth or not auth.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if auth.split(" ", 1)[1] != str(token):
        raise HTTPException(status_code=403, detail="Invalid token")


def _raise_for_failure(summary: str, e: Exception) -> NoReturn:
    """Map gateway exceptions to HTTP errors."""
    if isinstance(e, InvalidArgument):
        raise HTTPException(status_code=400, detail={"error": summary, "detail": str(e)}) from e
    if isinstance(e, ProcessFailure):
        logger.warning("%s: %s", summary, e.detail)
        status_code = 504 if e.kind is FailureKind.TIMEOUT else 502
        raise HTTPException(
            status_code=status_code, detail={"error": summary, "detail": e.detail}
        ) from e
    raise e


@router.get("/health")
def health_check(state: AppState = Depends(get_state)) -> dict[str, Any]:
    return {
        "status": "ok",
        "driver": state.runner.name,
        "monitors": {
            "connections": len(state.monitors),
            "active": state.monitors.active_count(),
        },
    }


@router.get("/devices", response_model=list[DeviceModel], response_model_exclude_none=True)
async def list_devices(
    details: bool = False,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> list[DeviceModel]:
    """Discover devices; with ?details=true also query model and tuner count."""
    try:
        devices = await state.controller.discover()
    except ProcessFailure as e:
        _raise_for_failure("Failed to discover devices", e)
    if details:
        devices = [await state.controller.describe(d) for d in devices]
    return [DeviceModel(**d.to_dict()) for d in devices]


@router.get("/devices/{device_id}/info", response_model=DeviceInfoModel)
async def get_device_info(
    device_id: str, _: None = Depends(auth_check), state: AppState = Depends(get_state)
) -> DeviceInfoModel:
    try:
        info = await state.controller.get_info(device_id)
    except InvalidArgument as e:
        _raise_for_failure("Failed to get device info", e)
    return DeviceInfoModel(**info.to_dict())


@router.get("/devices/{device_id}/tuner/{tuner}/status", response_model=TunerStatusModel)
async def get_tuner_status(
    device_id: str,
    tuner: int,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> TunerStatusModel:
    """One-shot status read; an unreachable or idle tuner reads as idle."""
    try:
        status = await state.controller.get_tuner_status(device_id, tuner)
        payload = status.to_dict()
    except InvalidArgument as e:
        _raise_for_failure("Failed to get tuner status", e)
    except ProcessFailure as e:
        logger.debug("Status read failed for %s/%s: %s", device_id, tuner, e.detail)
        payload = idle_status_payload()
    payload["program"] = await state.controller.get_current_program(device_id, tuner)
    return TunerStatusModel(**payload)


@router.get("/devices/{device_id}/tuner/{tuner}/channelmap", response_model=ChannelMapModel)
async def get_channel_map(
    device_id: str,
    tuner: int,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> ChannelMapModel:
    try:
        channel_map = await state.controller.get_channel_map(device_id, tuner)
    except InvalidArgument as e:
        _raise_for_failure("Failed to get channel map", e)
    return ChannelMapModel(map=channel_map)


@router.post("/devices/{device_id}/tuner/{tuner}/channelmap", response_model=OkResponse)
async def set_channel_map(
    device_id: str,
    tuner: int,
    req: SetChannelMapRequest,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> OkResponse:
    try:
        await state.controller.set_channel_map(device_id, tuner, req.map)
    except (InvalidArgument, ProcessFailure) as e:
        _raise_for_failure("Failed to set channel map", e)
    return OkResponse()


@router.post("/devices/{device_id}/tuner/{tuner}/channel", response_model=TuneResponse)
async def set_channel(
    device_id: str,
    tuner: int,
    req: SetChannelRequest,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> TuneResponse:
    try:
        result = await state.controller.set_channel(device_id, tuner, req.channel)
    except (InvalidArgument, ProcessFailure) as e:
        _raise_for_failure("Failed to set channel", e)
    return TuneResponse(channel=result.channel, program=result.program)


@router.post("/devices/{device_id}/tuner/{tuner}/clear", response_model=OkResponse)
async def clear_tuner(
    device_id: str,
    tuner: int,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> OkResponse:
    try:
        await state.controller.clear_tuner(device_id, tuner)
    except (InvalidArgument, ProcessFailure) as e:
        _raise_for_failure("Failed to clear tuner", e)
    return OkResponse()


@router.get("/devices/{device_id}/tuner/{tuner}/programs", response_model=list[ProgramModel])
async def list_programs(
    device_id: str,
    tuner: int,
    _: None = Depends(auth_check),
    state: AppState = Depends(get_state),
) -> list[ProgramModel]:
    try:
        programs = await state.controller.list_programs(device_id, tuner)
    except InvalidArgument as e:
        _raise_for_failure("Failed to list programs", e)
    return [ProgramModel(**p.to_dict()) for p in programs]


# ==============================================================================
# Live tuner monitoring
# ==============================================================================


async def _ws_authorized(websocket: WebSocket, state: AppState) -> bool:
    token = state.config.server.auth_token
    if token is None:
        return True
    auth = websocket.headers.get("authorization") or websocket.query_params.get("token")
    if not auth:
        await websocket.close(code=4401)
        return False
    value = auth.split(" ", 1)[1] if auth.startswith("Bearer ") else auth
    if value != str(token):
        await websocket.close(code=4403)
        return False
    return True


@router.websocket("/stream/monitor")
async def stream_monitor(websocket: WebSocket) -> None:
    """Live tuner status stream.

    Client messages:
    - {"type": "start-monitoring", "deviceId": "1040ABCD", "tuner": 0}
    - {"type": "stop-monitoring"}

    Server messages, about once per second while monitoring:
    - {"type": "tuner-status", "deviceId": "...", "tuner": 0,
       "data": {"channel": "8vsb:647000000", "lock": "8vsb", "ss": 83,
                "snq": 91, "seq": 100, "bps": 19394080, "pps": 1734,
                "program": 3}}
    - {"type": "error", "message": "..."} for rejected client messages

    A device that can't be reached shows up as idle status, not as errors.
    Starting again replaces the running session; disconnecting stops it.
    """
    app_state: AppState = websocket.app.state.app_state
    if not await _ws_authorized(websocket, app_state):
        return

    await websocket.accept()
    connection_id = uuid.uuid4().hex[:12]

    async def send(message: dict[str, Any]) -> None:
        await websocket.send_json(message)

    session = app_state.monitors.open(connection_id, send)
    logger.info("Monitor stream %s connected, client=%s", connection_id, websocket.client)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                cmd = MonitorCommand.model_validate(json.loads(text))
            except (ValueError, ValidationError) as e:
                await websocket.send_json({"type": "error", "message": f"bad message: {e}"})
                continue

            if cmd.type == "stop-monitoring":
                session.stop()
                continue

            if cmd.deviceId is None or cmd.tuner is None:
                await websocket.send_json(
                    {"type": "error", "message": "deviceId and tuner are required"}
                )
                continue
            try:
                session.start(cmd.deviceId, cmd.tuner)
            except InvalidArgument as e:
                await websocket.send_json({"type": "error", "message": str(e)})
    except WebSocketDisconnect:
        logger.info("Monitor stream %s disconnected", connection_id)
    except Exception as e:
        logger.error("Monitor stream %s failed: %s", connection_id, e, exc_info=True)
        raise
    finally:
        app_state.monitors.close(connection_id)
