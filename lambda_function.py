"""AWS Lambda handler serving the filtered event catalog."""
import json
import logging
import time
from typing import Dict, Any

from catalog.config import CatalogConfig, load_config
from catalog.coordinator import ViewCoordinator
from catalog.models import FilterCriteria, ViewStatus
from storage.dynamodb_store import DynamoDBEventStore
from storage.rest_store import RestEventStore


# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord('', 0, '', 0, '', (), None).__dict__
) | {'message', 'asctime'}


class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON, including ``extra`` fields."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_store(config: CatalogConfig):
    """
    Instantiate the remote store selected by the configuration.

    Args:
        config: Catalog configuration

    Returns:
        DynamoDBEventStore or RestEventStore
    """
    if config.store_backend == 'rest':
        return RestEventStore(
            base_url=config.rest_url,
            api_key=config.rest_api_key,
            timeout=config.timeout_seconds,
            poll_interval=config.poll_interval_seconds
        )
    return DynamoDBEventStore(
        table_name=config.table_name,
        registrations_table_name=config.registrations_table_name,
        poll_interval=config.poll_interval_seconds
    )


def criteria_from_event(event: Dict[str, Any]) -> FilterCriteria:
    """
    Read search text and category from API Gateway query parameters.

    Args:
        event: API Gateway proxy event

    Returns:
        FilterCriteria (empty when no parameters are given)
    """
    params = (event or {}).get('queryStringParameters') or {}
    return FilterCriteria(
        query=params.get('q') or '',
        category=params.get('category') or None
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': {'Content-Type': 'application/json'},
        'body': json.dumps(body)
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler returning the visible event list.

    Args:
        event: API Gateway proxy event
        context: Lambda context object

    Returns:
        Response dict with statusCode and JSON body
    """
    start_time = time.time()

    try:
        config = load_config()
    except ValueError as e:
        setup_logging()
        logging.getLogger(__name__).error(f"Invalid configuration: {e}")
        return _response(500, {
            'message': 'Invalid configuration',
            'error': str(e),
            'error_type': type(e).__name__
        })

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    criteria = criteria_from_event(event)
    logger.info(
        "Lambda execution started",
        extra={
            'store_backend': config.store_backend,
            'query': criteria.query,
            'category': criteria.category
        }
    )

    coordinator = None
    try:
        coordinator = ViewCoordinator(build_store(config), criteria=criteria)
        view = coordinator.start(subscribe=False)
        duration = round(time.time() - start_time, 2)

        if view.status == ViewStatus.FAILED:
            logger.error(
                f"Failed to load event catalog: {view.error}",
                extra={'duration_seconds': duration}
            )
            return _response(502, {
                'message': 'Failed to load events',
                'error': view.error,
                'duration_seconds': duration
            })

        logger.info(
            "Lambda execution completed successfully",
            extra={
                'duration_seconds': duration,
                'visible_events': len(view.visible_records)
            }
        )
        body = view.to_dict()
        body['duration_seconds'] = duration
        return _response(200, body)

    except Exception as e:
        duration = round(time.time() - start_time, 2)
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': duration,
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _response(500, {
            'message': 'Failed to serve events',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': duration
        })

    finally:
        if coordinator is not None:
            coordinator.stop()
