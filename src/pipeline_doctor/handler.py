"""
AWS Lambda entry point.

Configure the function with ``pipeline_doctor.handler.handler`` and route
CodeBuild "Build State Change" and CodePipeline "Action Execution State
Change" EventBridge rules to it. Exceptions propagate so the invoker's own
retry policy redelivers the event.
"""
import asyncio
from typing import Any, Dict, Optional

from .config import DoctorConfig
from .controller import IncidentController
from .factory import create_controller
from .logging_config import setup_logging
from .logging_context import LoggingContext, get_logger

logger = get_logger(__name__)

_controller: Optional[IncidentController] = None


def get_controller() -> IncidentController:
    """Controller built once per execution environment from env vars."""
    global _controller
    if _controller is None:
        config = DoctorConfig.from_env()
        setup_logging(level=config.log_level, use_json=config.log_json)
        _controller = create_controller(config)
    return _controller


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    Handle one EventBridge event.

    Returns:
        Outcome dictionary (for logging/testing; EventBridge ignores it)
    """
    request_id = getattr(context, 'aws_request_id', None)
    with LoggingContext(request_id=request_id):
        logger.debug(f"Received {event.get('detail-type')!r} event")
        outcome = asyncio.run(get_controller().handle_envelope(event))
    return outcome.to_dict()
