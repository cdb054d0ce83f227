"""
FastAPI control surface.

REST endpoints for strategy control and runtime configuration, a websocket
stream of intel events and the Prometheus exposition. Built per application
by ``create_app`` so tests can run several isolated instances.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from .app import Application
from .exceptions import ConfigurationError, NetworkError, UnknownStrategyError
from .utils import get_current_timestamp, get_logger
from .version import get_version

logger = get_logger(__name__)


# Pydantic models for API requests
class ContractAddressRequest(BaseModel):
    address: str


class LiveModeRequest(BaseModel):
    enabled: bool


class GoLiveRequest(BaseModel):
    contract_address: Optional[str] = None
    strategy_id: Optional[str] = None


def create_app(application: Application) -> FastAPI:
    """
    Build the control API for one application.

    Args:
        application: Wired application from ``build_application``
    """
    registry = application.registry
    runtime = application.runtime_config
    events = application.events
    executor = application.executor

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await application.shutdown()

    app = FastAPI(title="Flash Arbitrage Controller", version=get_version(), lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _strategy(strategy_id: str):
        try:
            return registry.get(strategy_id)
        except UnknownStrategyError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": get_version(),
            "timestamp": get_current_timestamp(),
            "live_mode": runtime.live_mode,
        }

    # === STRATEGIES ===

    @app.get("/api/bots")
    async def list_bots():
        return [s.to_dict() for s in registry.all_states()]

    @app.post("/api/bots/emergency-stop")
    async def emergency_stop():
        stopped = registry.emergency_stop()
        return {"status": "ok", "stopped": stopped}

    @app.post("/api/bots/{strategy_id}/start")
    async def start_bot(strategy_id: str):
        controller = _strategy(strategy_id)
        controller.start()
        return controller.get_state().to_dict()

    @app.post("/api/bots/{strategy_id}/stop")
    async def stop_bot(strategy_id: str):
        controller = _strategy(strategy_id)
        controller.stop()
        return controller.get_state().to_dict()

    # === RUNTIME CONFIG ===

    @app.get("/api/config")
    async def get_config():
        return runtime.snapshot().to_dict()

    @app.post("/api/config/contract")
    async def set_contract(request: ContractAddressRequest):
        try:
            runtime.set_contract_address(request.address)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        events.emit(
            f"Contract address set: {runtime.contract_address}",
            severity="success",
            priority="high",
            source="config",
        )
        return {"status": "ok", **runtime.snapshot().to_dict()}

    @app.post("/api/config/live")
    async def set_live(request: LiveModeRequest):
        try:
            runtime.set_live_mode(request.enabled)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        events.emit(
            "LIVE MODE ACTIVATED - Autonomous trading enabled"
            if request.enabled
            else "DRY RUN MODE - Simulation only",
            severity="success" if request.enabled else "warning",
            priority="high",
            source="config",
        )
        return {"status": "ok", "live_mode": runtime.live_mode}

    @app.post("/api/go-live")
    async def go_live(request: GoLiveRequest):
        """Set the contract, verify the executor role, enable live mode and start."""
        if request.contract_address:
            try:
                runtime.set_contract_address(request.contract_address)
            except ConfigurationError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e

        blocker = runtime.live_mode_blocker()
        if blocker:
            raise HTTPException(status_code=400, detail=blocker)

        try:
            authorized = await executor.is_bot_authorized()
        except NetworkError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        if not authorized:
            raise HTTPException(
                status_code=400,
                detail="Bot wallet is not authorized as executor",
            )

        strategy_id = request.strategy_id or application.config.strategies[0].id
        controller = _strategy(strategy_id)
        runtime.set_live_mode(True)
        controller.start()
        events.emit(
            f"SYSTEM LIVE - {controller.name} running autonomously",
            severity="success",
            priority="high",
            source="config",
        )
        return {
            "status": "ok",
            "live_mode": True,
            "strategy": controller.get_state().to_dict(),
            "bot_wallet_address": executor.bot_address,
            "contract_address": runtime.contract_address,
        }

    # === CHAIN STATUS ===

    @app.get("/api/bot-wallet/status")
    async def bot_wallet_status():
        try:
            return await executor.wallet_status()
        except NetworkError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e

    @app.get("/api/contract/status")
    async def contract_status():
        try:
            return await executor.contract_status()
        except NetworkError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e

    @app.get("/api/system/status")
    async def system_status():
        return {
            "runtime": runtime.snapshot().to_dict(),
            "scanner": application.scanner.get_stats(),
            "executor": executor.get_stats(),
            "strategy": application.strategy.get_stats(),
            "oracle": application.oracle.cache_stats(),
            "total_pnl": float(registry.total_pnl),
        }

    # === INTEL ===

    @app.get("/api/intel")
    async def recent_intel(limit: int = 50):
        return [e.to_dict() for e in events.recent(limit)]

    @app.websocket("/ws/intel")
    async def intel_websocket(websocket: WebSocket):
        await websocket.accept()
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)

        def _enqueue(event):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)

        async def _forward():
            while True:
                event = await queue.get()
                await websocket.send_json(event.to_dict())

        unsubscribe = events.subscribe(_enqueue)
        sender = None
        logger.info(f"Intel client connected. Subscribers: {events.subscriber_count}")
        try:
            # Send recent history first
            for event in events.recent(10):
                await websocket.send_json(event.to_dict())
            sender = asyncio.create_task(_forward())

            # Keep connection alive
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.info("Intel client disconnected")
        finally:
            unsubscribe()
            if sender is not None:
                sender.cancel()

    # === METRICS ===

    @app.get("/metrics")
    async def metrics():
        return Response(
            content=application.metrics.render(),
            media_type=application.metrics.content_type,
        )

    return app
