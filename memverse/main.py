"""
MemVerse main entry point.

Runs the delivery engine and the HTTP API in one event loop.

Architecture:
- Database: single SQLite file shared by all stores
- NotificationDispatcher: bounded queue + workers for verse emails
- SweepScheduler: periodic delivery pass over subscribed users
- MemVerseServer: aiohttp JSON API (dashboard delivers on demand)

Usage:
    python -m memverse.main [--config path/to/config.json]

Property of Uncompromising Sensors LLC.
"""

import asyncio
import argparse
import os
import signal
import sys
import orjson
from pathlib import Path
from typing import Any, Dict

from memverse.core.dashboard import DashboardResolver
from memverse.core.database import Database
from memverse.core.delivery import DeliveryOrchestrator
from memverse.core.notifications import LogNotifier, NotificationDispatcher
from memverse.core.subscriberStore import SubscriberStore
from memverse.core.sweep import SweepScheduler
from memverse.core.verseStore import VerseStore
from memverse.server.auth import AuthManager
from memverse.server.mailer import Mailer
from memverse.server.server import MemVerseServer
from memverse.server.userStore import UserStore
from sdk.logging import getLogger, configureLogging

PRODUCTION_SWEEP_SECONDS = 86400
DEVELOPMENT_SWEEP_SECONDS = 3600


def loadConfig(configPath: str) -> Dict[str, Any]:
    """Load configuration from JSON file, then apply environment overrides"""
    with open(configPath, 'r') as f:
        config = orjson.loads(f.read())

    jwtSecret = os.environ.get('MEMVERSE_JWT_SECRET')
    if jwtSecret:
        config.setdefault('auth', {})['secret'] = jwtSecret

    smtpPassword = os.environ.get('MEMVERSE_SMTP_PASSWORD')
    if smtpPassword:
        config.setdefault('smtp', {})['password'] = smtpPassword

    return config


def sweepInterval(config: Dict[str, Any]) -> float:
    """Explicit sweep.intervalSeconds wins; otherwise derived from appEnv"""
    interval = config.get('sweep', {}).get('intervalSeconds')
    if interval:
        return float(interval)
    if config.get('appEnv', 'development') == 'production':
        return PRODUCTION_SWEEP_SECONDS
    return DEVELOPMENT_SWEEP_SECONDS


async def run(config: Dict[str, Any]):
    """Wire components, run until SIGINT/SIGTERM, then shut down in reverse order"""
    log = getLogger()

    database = Database(config.get('dbPath', './memverse/data/memverse.db'))
    subscriberStore = SubscriberStore(database)
    verseStore = VerseStore(database)
    userStore = UserStore(database)

    versesPath = config.get('versesPath')
    if versesPath:
        verseStore.seedFromFile(versesPath)

    smtpConfig = config.get('smtp', {})
    mailer = Mailer(smtpConfig)
    notifier = mailer if mailer.enabled else LogNotifier()

    notifyConfig = config.get('notifications', {})
    dispatcher = NotificationDispatcher(
        notifier,
        maxQueueSize=notifyConfig.get('maxQueueSize', 1000),
        workers=notifyConfig.get('workers', 4),
        sendTimeoutSeconds=notifyConfig.get('sendTimeoutSeconds', 30)
    )

    sweepConfig = config.get('sweep', {})
    orchestrator = DeliveryOrchestrator(
        subscriberStore, verseStore, dispatcher,
        ioTimeoutSeconds=sweepConfig.get('ioTimeoutSeconds', 10),
        commitTimeoutSeconds=sweepConfig.get('commitTimeoutSeconds', 30)
    )
    scheduler = SweepScheduler(
        subscriberStore, orchestrator,
        intervalSeconds=sweepInterval(config),
        maxConcurrency=sweepConfig.get('maxConcurrency', 16),
        runOnStart=sweepConfig.get('runOnStart', False),
        ioTimeoutSeconds=sweepConfig.get('ioTimeoutSeconds', 10)
    )

    authManager = AuthManager(config.get('auth', {}), userStore, mailer)
    server = MemVerseServer(
        config.get('server', {}), authManager, userStore,
        subscriberStore, verseStore, DashboardResolver(orchestrator, verseStore)
    )

    stopEvent = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopEvent.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    try:
        dispatcher.start()
        scheduler.start()
        await server.start()

        log.info("[Main] MemVerse running (Ctrl+C to stop)")
        await stopEvent.wait()
        log.info("[Main] Shutdown signal received")

    except Exception as e:
        log.error(f"[Main] Fatal error: {e}", exc_info=True)
    finally:
        await server.stop()
        await scheduler.stop()
        await dispatcher.stop()
        database.close()
        log.info("[Main] MemVerse stopped")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='MemVerse - memory verse delivery service')
    parser.add_argument('--config', default='memverse/config.json', help='Path to config file')
    args = parser.parse_args()

    configPath = Path(args.config)
    if not configPath.exists():
        configureLogging()
        getLogger().error(f"Config file not found: {args.config}")
        sys.exit(1)

    config = loadConfig(str(configPath))

    configureLogging(
        logDir=config.get('logDir'),
        level=config.get('logLevel', 'INFO')
    )
    log = getLogger()
    log.info("=" * 60)
    log.info(f"MemVerse ({config.get('appEnv', 'development')})")
    log.info("=" * 60)
    log.info(f"Config: {args.config}")

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log.info("[Main] Interrupted")


if __name__ == '__main__':
    main()
