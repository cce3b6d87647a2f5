import logging
import logging.handlers
import re
from pathlib import Path
from typing import Optional

import orjson
import structlog
from structlog.types import FilteringBoundLogger

from vafast_client.common.vars import get_correlation_id
from vafast_client.config.models import LoggingConfig

_SIZE_MULTIPLIERS = {'B': 1, 'KB': 1024, 'MB': 1024**2, 'GB': 1024**3, 'TB': 1024**4}


def _orjson_serializer(*args, **kwargs) -> str:
    return orjson.dumps(*args, **kwargs).decode('utf-8')


def parse_file_size(value: str) -> int:
    """Parse sizes such as "10MB" or "512KB" into bytes, defaulting to 10MB."""
    match = re.match(r'(\d+)\s*([KMGT]?B?)$', value.strip().upper())
    if not match:
        return 10 * _SIZE_MULTIPLIERS['MB']
    unit = match.group(2) or 'MB'
    if unit != 'B' and not unit.endswith('B'):
        unit += 'B'
    return int(match.group(1)) * _SIZE_MULTIPLIERS.get(unit, _SIZE_MULTIPLIERS['MB'])


def _create_log_handlers(log_config: LoggingConfig) -> list:
    """Create stdlib handlers for console and rotating JSON file output."""
    handlers = []

    if log_config.console_enabled:
        formatter = structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, structlog.processors.format_exc_info, structlog.dev.ConsoleRenderer()]
        )
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if log_config.file_enabled:
        log_dir = Path(log_config.log_file_dir) if log_config.log_file_dir else Path.cwd() / 'logs'
        if log_dir.exists() and not log_dir.is_dir():
            raise ValueError(f'Log directory {log_dir} is not a directory')
        log_dir.mkdir(exist_ok=True, parents=True)

        formatter = structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, structlog.processors.JSONRenderer(serializer=_orjson_serializer)]
        )
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / 'vafast-client.log', maxBytes=parse_file_size(log_config.max_file_size), backupCount=log_config.backup_count
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    return handlers


def _correlation_id_processor(logger, method_name, event_dict):
    """Attach the active call's correlation id when one is set."""
    if 'correlation_id' not in event_dict:
        correlation_id = get_correlation_id()
        if correlation_id:
            event_dict['correlation_id'] = correlation_id
    return event_dict


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structlog logger."""
    return structlog.get_logger(name)


def configure_structlog(log_config: Optional[LoggingConfig] = None) -> None:
    """Route structlog through stdlib logging with console and optional file output."""
    log_config = log_config or LoggingConfig()
    level = getattr(logging, log_config.level.upper())

    logging.basicConfig(level=level, handlers=_create_log_handlers(log_config), format='%(message)s', force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt='ISO', utc=True),
            _correlation_id_processor,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
