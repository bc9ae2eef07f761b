"""
Centralized logging configuration for the signal engine.

All components log through structlog so that gate decisions and position
transitions share one structured, auditable format.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger

from ..config.defaults import LoggingParams


def _processors(format_json: bool, include_timestamp: bool, include_caller: bool,
                extra_processors: Optional[list]) -> list:
    chain = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if include_timestamp:
        chain.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    if include_caller:
        chain.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.MODULE,
                        structlog.processors.CallsiteParameter.LINENO]
        ))
    chain.extend(extra_processors or [])

    if format_json:
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog over the stdlib logging backend.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        format_json: JSON lines instead of the console renderer
        include_timestamp: Add an ISO-8601 UTC timestamp to each event
        include_caller: Add module and line number to each event
        extra_processors: Processors inserted before the renderer
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(level=log_level, stream=sys.stdout, format="%(message)s")
    logging.getLogger().setLevel(log_level)

    structlog.configure(
        processors=_processors(format_json, include_timestamp, include_caller, extra_processors),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_params(params: LoggingParams) -> None:
    """Apply the ``logging`` section of the application config."""
    configure_logging(level=params.level, format_json=params.format_json)


def get_logger(name: str) -> FilteringBoundLogger:
    return structlog.get_logger(name)


def get_gating_logger(name: str) -> FilteringBoundLogger:
    """
    Logger for signal gating decisions.

    Every accept/reject decision of the signal pipeline goes through this
    logger so rejections can be audited per symbol.
    """
    return get_logger(name).bind(subsystem="gating", audit_trail=True)


def get_state_logger(name: str) -> FilteringBoundLogger:
    """Logger for position lifecycle transitions."""
    return get_logger(name).bind(subsystem="position_lifecycle", audit_trail=True)


def log_gate_decision(
    logger: FilteringBoundLogger,
    gate_name: str,
    passed: bool,
    symbol: str,
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Record one gate outcome; failures at WARNING, passes at INFO.

    Args:
        logger: Gating logger
        gate_name: Gate identifier, e.g. ``risk_reward``
        passed: Outcome of the gate
        symbol: Symbol the candidate signal belongs to
        reason: Human readable explanation
        context: Values the decision was based on
    """
    bound = logger.bind(
        gate_name=gate_name,
        gate_result="PASS" if passed else "FAIL",
        symbol=symbol,
        reason=reason,
        log_kind="gate_decision"
    )
    if context:
        bound = bound.bind(context=context)

    if passed:
        bound.info("Gate passed")
    else:
        bound.warning("Gate failed")


def log_state_transition(
    logger: FilteringBoundLogger,
    position_id: str,
    from_state: str,
    to_state: str,
    trigger: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Record a position status change.

    ``from_state`` is ``NONE`` when the position is opened; ``trigger`` is the
    tick event kind that caused the change (take_profit, stop_loss).
    """
    bound = logger.bind(
        position_id=position_id,
        from_state=from_state,
        to_state=to_state,
        trigger=trigger,
        log_kind="state_transition"
    )
    if context:
        bound = bound.bind(context=context)

    bound.info("State transition")
