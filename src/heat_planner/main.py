"""Heat Planner application entry point and lifecycle orchestrator.

Startup sequence:
  config → SQLite → price provider → heater → plan runner →
  control loop → HTTP API
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys

from heat_planner import __version__
from heat_planner.config.schema import AppConfig
from heat_planner.db.engine import close_db, init_db
from heat_planner.db.repository import Repository
from heat_planner.logging.structured import setup_logging
from heat_planner.settings import load_settings

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires all modules together and manages startup/shutdown ordering.
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()

        # References held for cleanup
        self._closeables: list = []  # objects with async .close()
        self._control_loop = None
        self._server = None

    async def start(self) -> None:
        """Start all application components in dependency order."""
        logger.info("Starting Heat Planner v%s", __version__)
        self._running = True
        self._stop_event.clear()

        # ── 1. Database ──────────────────────────────────────
        db = await init_db(self.config.db.path)
        repo = Repository(db)

        # ── 2. Price provider + tariff ───────────────────────
        from heat_planner.tariff.transmission import TransmissionTariff

        price_provider = self._create_price_provider()
        self._closeables.append(price_provider)
        tariff = TransmissionTariff(self.config.tariff)

        # ── 3. Heater ────────────────────────────────────────
        heater = self._create_heater()
        if heater is not None:
            self._closeables.append(heater)

        # ── 4. Plan runner ───────────────────────────────────
        from heat_planner.planning.runner import PlanRunner

        runner = PlanRunner(self.config, repo, price_provider, tariff, heater)

        # ── 5. Control loop ──────────────────────────────────
        from heat_planner.control.loop import ControlLoop

        control_loop = ControlLoop(self.config, runner)
        self._control_loop = control_loop
        self._tasks.append(asyncio.create_task(control_loop.run(), name="control_loop"))

        # ── 6. HTTP API ──────────────────────────────────────
        if not self.config.api.enabled:
            logger.info("HTTP API disabled, running control loop only")
            await self._stop_event.wait()
            return

        from heat_planner.api.app import create_app

        app = create_app(self.config, repo, runner)
        app.state.control_loop = control_loop

        import uvicorn

        uvi_config = uvicorn.Config(
            app,
            host=self.config.api.host,
            port=self.config.api.port,
            log_level="warning",
        )
        server = uvicorn.Server(uvi_config)
        # Keep process signal handling in main() so Ctrl+C behaviour is predictable.
        server.install_signal_handlers = lambda: None
        self._server = server

        logger.info("API available at http://%s:%d", self.config.api.host, self.config.api.port)

        # Server.serve() blocks until shutdown
        await server.serve()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse order."""
        if not self._running:
            return

        logger.info("Shutting down Heat Planner")
        self._running = False
        self._stop_event.set()

        if self._server is not None:
            self._server.should_exit = True

        if self._control_loop:
            self._control_loop.stop()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        for closeable in reversed(self._closeables):
            with contextlib.suppress(Exception):
                await closeable.close()
        self._closeables.clear()

        await close_db()
        logger.info("Heat Planner stopped")

    def _create_price_provider(self):
        config = self.config.providers.prices
        if config.type == "porssisahko":
            from heat_planner.tariff.providers.porssisahko import PorssisahkoProvider

            return PorssisahkoProvider(config)
        raise ValueError(f"Unknown price provider: {config.type}")

    def _create_heater(self):
        config = self.config.heater
        if config.adapter == "shelly":
            from heat_planner.heaters.adapters.shelly import ShellyHeater

            return ShellyHeater(config)
        if config.adapter == "none":
            logger.info("No heater adapter configured, plans are not actuated")
            return None
        raise ValueError(f"Unknown heater adapter: {config.adapter}")


def main() -> None:
    """Entry point for the application."""
    config = load_settings()

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
    )

    app = Application(config)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
        finally:
            if app._running:
                with contextlib.suppress(Exception):
                    await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
