"""fungi live server — lifecycle controller and control API in one loop."""

from __future__ import annotations

import asyncio
import logging

import structlog
import uvicorn

from fungi.api import control_app, set_controller
from fungi.config import FungiSettings, settings
from fungi.evolution.engine import EvolutionConfig, EvolutionaryEngine
from fungi.feed.base import Feed
from fungi.feed.mastodon import MastodonFeed
from fungi.history.local import FungiHistory
from fungi.history.mycelial import MycelialFungiHistory
from fungi.lifecycle.controller import LifecycleController

_logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    level_no = logging.getLevelName(level.upper())
    if not isinstance(level_no, int):
        level_no = logging.INFO
    logging.basicConfig(
        level=level_no,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level_no))


def build_controller(cfg: FungiSettings, feed: Feed | None = None) -> LifecycleController:
    """Wire a controller from settings. ``feed`` overrides the Mastodon client."""
    if feed is None:
        if not cfg.mastodon_url or not cfg.mastodon_api_key:
            raise SystemExit(
                "Missing configuration: set FUNGI_MASTODON_URL and FUNGI_MASTODON_API_KEY"
            )
        feed = MastodonFeed(cfg.mastodon_url, cfg.mastodon_api_key, timeout=cfg.feed_timeout_seconds)

    history = FungiHistory(cfg.history_path)
    history.load()

    engine = EvolutionaryEngine(EvolutionConfig(
        top_k=cfg.top_k,
        crossover_rate=cfg.crossover_rate,
        mutation_rate=cfg.mutation_rate,
        new_rule_rate=cfg.new_rule_rate,
        drop_rule_rate=cfg.drop_rule_rate,
        seed=cfg.evolution_seed,
    ))
    mycelial = MycelialFungiHistory(
        feed,
        timeout=cfg.feed_timeout_seconds,
        exclude_author=cfg.account_name,
    )
    return LifecycleController(
        feed,
        cfg.mycelial_hashtag,
        history=history,
        mycelial=mycelial,
        engine=engine,
        answer_interval=cfg.answer_interval_seconds,
        cycle_interval=cfg.cycle_interval_seconds,
        feed_timeout=cfg.feed_timeout_seconds,
        run_cycle_on_start=cfg.run_cycle_on_start,
    )


async def main(cfg: FungiSettings = settings) -> None:
    configure_logging(cfg.log_level)
    controller = build_controller(cfg)
    set_controller(controller)
    _logger.info(
        "Starting fungus on #%s, control API at http://%s:%d",
        cfg.mycelial_hashtag, cfg.api_host, cfg.api_port,
    )

    config = uvicorn.Config(
        control_app,
        host=cfg.api_host,
        port=cfg.api_port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    server_task = asyncio.create_task(server.serve())

    try:
        # Returns only on a fatal error (e.g. history storage exhausted)
        await controller.run()
    finally:
        server.should_exit = True
        await server_task
        await controller.stop()
        set_controller(None)


if __name__ == "__main__":
    asyncio.run(main())
