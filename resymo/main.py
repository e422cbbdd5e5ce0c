import os
import signal
import asyncio
import logging
import argparse
from typing import List, Optional

from .config import Config, load_config
from .registry import Registry
from .uplink import homeassistant, http_server
from .utils import ConfigError, setup_logger

CONFIG_FILE = '/etc/resymo/agent.yaml'


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='resymo-agent', description='ReSyMo host telemetry agent')
    parser.add_argument(
        '-c', '--config',
        default=os.environ.get('RESYMO_CONFIG', CONFIG_FILE),
        help='Path to the configuration file',
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-q', '--quiet', action='store_true', help='Be quiet')
    verbosity.add_argument('-v', '--verbose', action='count', default=0, help='Be more verbose')
    return parser.parse_args(argv)


def log_level(args: argparse.Namespace) -> int:
    if args.quiet:
        return logging.WARNING
    if args.verbose:
        return logging.DEBUG
    return logging.INFO


async def run_agent(config: Config, logger: logging.Logger) -> None:
    registry = Registry.from_config(config.collectors, config.commands)

    tasks: List[asyncio.Task] = []
    if config.http_server is not None:
        logger.info('Starting HTTP server uplink')
        tasks.append(asyncio.create_task(http_server.run(config.http_server, registry, logger), name='http-server'))
    if config.homeassistant is not None:
        logger.info('Starting Home Assistant MQTT uplink')
        tasks.append(asyncio.create_task(homeassistant.run(config.homeassistant, registry, logger), name='homeassistant'))

    if not tasks:
        logger.warning('No uplink configured')

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except (NotImplementedError, RuntimeError):
            pass

    stop_task = asyncio.create_task(stop_event.wait(), name='shutdown')
    done, pending = await asyncio.wait(tasks + [stop_task], return_when=asyncio.FIRST_COMPLETED)

    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    for task in done:
        if task is not stop_task:
            # an uplink ending on its own is either a shutdown or a fatal error
            task.result()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logger = setup_logger('resymo', log_level(args))

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f'Reading configuration file "{args.config}": {e}')
        return 1

    logger.info('Starting agent')
    try:
        asyncio.run(run_agent(config, logger))
    except ConfigError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        pass

    logger.info('Exiting agent')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
