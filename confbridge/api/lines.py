"""WebSocket endpoint for operator consoles.

On connect the client receives the monitored line roster
(``Shared Lines: #5016#5017``); afterwards it receives ``KeepAlive`` every few
seconds. Messages from the client are ignored.

Route: /websocket
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()


@router.websocket("/websocket")
async def lines_websocket(websocket: WebSocket) -> None:
    await websocket.accept()

    notifier = websocket.app.state.notifier
    channel_id = await notifier.register(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        notifier.unregister(channel_id)
