import os
import asyncio
import functools
import json
import yaml
import logging
import humanfriendly
from typing import Any, Callable, Dict, Union


class ConfigError(Exception):
    pass


def load_file(path_to_file: str) -> Dict[str, Any]:
    if not os.path.isfile(path_to_file):
        raise ConfigError(f'Configuration file not found: {path_to_file}')
    _, extension = os.path.splitext(path_to_file)
    with open(path_to_file, 'r', encoding='utf-8') as f:
        try:
            if extension.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigError(f'Failed to parse configuration file {path_to_file}: {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Configuration file {path_to_file} must contain a mapping')
    return data


def normalize_str(string: str) -> str:
    """
    Replace everything that is not an ASCII letter or digit with an underscore.
    """
    return ''.join(c if c.isascii() and c.isalnum() else '_' for c in string)


def parse_duration(value: Union[str, int, float, None], default: float) -> float:
    """
    Parse a duration like '60s', '5m' or '2 hours' into seconds. Plain numbers are seconds.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f'Invalid duration: {value!r}')
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(humanfriendly.parse_timespan(str(value)))
    except humanfriendly.InvalidTimespan as e:
        raise ConfigError(f'Invalid duration: {value!r}') from e


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s [%(name)s] [%(levelname)-8s] %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def log_errors(context: str) -> Callable:
    """
    Decorator for async methods: log any error with context instead of propagating it.
    The instance's `logger` attribute is used.
    """

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.exception(f'Error in "{context}": {type(e).__name__} - {e}')
                return None

        return wrapper

    return decorator
