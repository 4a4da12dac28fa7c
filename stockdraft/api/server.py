"""FastAPI server for the Stock Draft leaderboard."""

import logging
import secrets
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from stockdraft import __version__
from stockdraft.config import Settings, get_settings
from stockdraft.exceptions import CacheUnavailableError, ConfigurationError
from stockdraft.live import LivePriceService, LivePricesResponse, build_service
from stockdraft.market import get_market_status, trading_date
from stockdraft.scheduler import create_embedded_scheduler
from stockdraft.standings import (
    ContestStats,
    HeadToHead,
    PlayerStanding,
    calculate_standings,
    compare_players,
    contest_stats,
    days_remaining,
    race_series,
)
from stockdraft.storage.prices import StaticPrices, load_price_history

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    service: LivePriceService | None = None,
) -> FastAPI:
    """Build the app. A pre-built service skips wiring from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app_settings = settings or get_settings()
        owns_service = service is None
        app.state.service = service or build_service(app_settings)

        scheduler = None
        if app_settings.scheduler.embedded:
            scheduler = create_embedded_scheduler(app.state.service)
            scheduler.start()

        logger.info(
            f"Stock Draft API ready ({app_settings.environment}, "
            f"cache={app.state.service.cache.source})"
        )
        yield

        if scheduler is not None:
            scheduler.shutdown(wait=False)
        if owns_service:
            await app.state.service.cache.close()
        logger.info("Stock Draft API stopped")

    app = FastAPI(title="Stock Draft API", version=__version__, lifespan=lifespan)

    origins = (settings or get_settings()).cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"Configuration error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(_build_routes())
    return app


def get_service(request: Request) -> LivePriceService:
    return request.app.state.service


def _authorized(service: LivePriceService, authorization: str | None) -> bool:
    secret = service.settings.cron_secret
    if secret and authorization:
        return secrets.compare_digest(authorization, f"Bearer {secret}")
    return False


def _build_routes() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @router.get("/api/contest")
    async def get_contest(service: LivePriceService = Depends(get_service)):
        """Contest metadata and roster."""
        info = service.contest.contest_info
        return {
            "contestInfo": info,
            "players": service.contest.players,
            "daysRemaining": days_remaining(info.end_date, service.now()),
            "marketStatus": get_market_status(service.now()),
        }

    @router.get("/api/live-prices", response_model=LivePricesResponse)
    async def live_prices(service: LivePriceService = Depends(get_service)):
        return await service.get_live_prices()

    @router.get("/api/cron/update-prices")
    async def update_prices(
        authorization: str | None = Header(default=None),
        service: LivePriceService = Depends(get_service),
    ):
        """Scheduled refresh trigger, authenticated with the cron bearer secret."""
        if not _authorized(service, authorization):
            if service.settings.is_production:
                if not service.settings.cron_secret:
                    raise ConfigurationError("Cron secret not configured")
                return JSONResponse(status_code=401, content={"error": "Unauthorized"})
            logger.warning("Unauthenticated cron call allowed outside production")

        try:
            result = await service.refresh()
        except CacheUnavailableError as e:
            logger.error(f"[Cron] Error updating prices: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to fetch prices", "details": str(e)},
            )
        return result

    @router.get("/api/standings")
    async def get_standings(service: LivePriceService = Depends(get_service)):
        prices, live = await service.current_prices()
        standings = calculate_standings(service.contest.players, prices)
        return {
            "standings": standings,
            "source": live.source,
            "stale": live.stale,
            "marketStatus": live.market_status,
            "timestamp": live.timestamp,
        }

    @router.get("/api/players/{player_id}", response_model=PlayerStanding)
    async def get_player(player_id: str, service: LivePriceService = Depends(get_service)):
        for standing in await service.standings():
            if standing.player.id == player_id:
                return standing
        raise HTTPException(status_code=404, detail=f"Player {player_id} not found")

    @router.get("/api/compare", response_model=HeadToHead)
    async def compare(
        p1: str | None = None,
        p2: str | None = None,
        service: LivePriceService = Depends(get_service),
    ):
        """Head-to-head; defaults to the top two players."""
        standings = await service.standings()
        by_id = {s.player.id: s for s in standings}

        if len(standings) < 2:
            raise HTTPException(status_code=400, detail="Need at least two players to compare")

        first = by_id.get(p1) if p1 else standings[0]
        second = by_id.get(p2) if p2 else standings[1]
        if first is None or second is None:
            missing = p1 if first is None else p2
            raise HTTPException(status_code=404, detail=f"Player {missing} not found")

        return compare_players(first, second)

    @router.get("/api/stats", response_model=ContestStats)
    async def stats(service: LivePriceService = Depends(get_service)):
        return contest_stats(await service.standings())

    @router.get("/api/race")
    async def race(service: LivePriceService = Depends(get_service)):
        """Total return per player at each daily close, plus the current point."""
        history = load_price_history(service.settings.data_dir)
        points = race_series(service.contest.players, history)

        prices, _ = await service.current_prices()
        today = trading_date(service.now())
        current = race_series(
            service.contest.players, [(today, StaticPrices(prices=prices))]
        )
        points = [p for p in points if p.date != today] + current

        return {
            "players": [{"id": p.id, "name": p.name} for p in service.contest.players],
            "points": points,
        }

    return router
