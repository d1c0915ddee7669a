"""
Main entry point for the PagerDuty extension operator.

Runs the controller loop against the configured manifest path until
SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
from typing import Optional

from config import Config, get_config
from controller import Controller, ControllerConfig
from manifests import load_manifests
from pagerduty import PagerDutyClient
from plugins.registry import get_registry, register_builtin_plugins
from state import StateStore

logger = logging.getLogger(__name__)


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.logging.level, logging.INFO),
        format=config.logging.format,
    )


class Application:
    """Main application that wires the controller and plugins together."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or get_config()
        self.controller: Optional[Controller] = None
        self.running = False

    def initialize(self) -> None:
        """Initialize all components."""
        logger.info("Initializing PagerDuty extension operator")

        register_builtin_plugins()
        registry = get_registry()

        # Only enabled plugins get configuration overrides
        plugin_configs = {
            resource_type: self.config.plugins.get_plugin_config(resource_type)
            for resource_type in registry.list_resource_plugins()
            if self.config.plugins.is_enabled(resource_type)
        }

        ctrl_config = self.config.controller
        self.controller = Controller(
            client=PagerDutyClient.from_config(self.config.pagerduty),
            state_store=StateStore(ctrl_config.state_path),
            registry=registry,
            config=ControllerConfig(
                reconcile_interval=ctrl_config.reconcile_interval,
                max_concurrent_reconciles=ctrl_config.max_concurrent_reconciles,
                prune=ctrl_config.prune,
                plugin_configs=plugin_configs,
            ),
        )

        logger.info("All components initialized")

    def load_specs(self):
        specs = load_manifests(self.config.controller.manifest_path)
        enabled = [
            spec
            for spec in specs
            if self.config.plugins.is_enabled(spec.resource_type)
        ]
        skipped = len(specs) - len(enabled)
        if skipped:
            logger.warning(f"Skipping {skipped} resources of disabled types")
        return enabled

    async def start(self) -> None:
        """Start the application."""
        if not self.controller:
            self.initialize()

        self.running = True
        logger.info(
            f"Watching manifests in {self.config.controller.manifest_path} "
            f"every {self.config.controller.reconcile_interval}s"
        )
        await self.controller.start(self.load_specs)

    async def stop(self) -> None:
        """Stop the application gracefully."""
        if not self.running:
            return
        self.running = False

        if self.controller:
            await self.controller.stop()

        logger.info("PagerDuty extension operator stopped")


async def main():
    """Main entry point."""
    config = get_config()
    configure_logging(config)
    app = Application(config)

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
