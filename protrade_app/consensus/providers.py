"""
AI opinion collaborators.

Providers (LLM API clients) live outside this package and implement
``AIOpinionProvider``. The collector queries them concurrently under one
deadline; any failure, timeout or unparseable answer is replaced by a
deterministic neutral opinion for that source.
"""

import math
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Optional, Union

import orjson
import structlog

from ..errors import MalformedDataError
from .models import AIOpinion, Recommendation, RiskLevel, TimeHorizon

logger = structlog.get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_REQUIRED_FIELDS = ("confidence", "recommendation", "reasoning")

NEUTRAL_CONFIDENCE = 50.0


class AIOpinionProvider(ABC):
    """External model returning an opinion about a symbol."""

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Identifier matching a key of the AI weight table."""

    @abstractmethod
    def analyze(self, symbol: str, context: dict[str, Any]) -> Union[AIOpinion, dict[str, Any], str]:
        """Return an opinion, a raw dict, or raw model text containing a JSON object."""


def neutral_opinion(source: str, reason: str = "unavailable") -> AIOpinion:
    """Deterministic placeholder used when a source cannot answer."""
    return AIOpinion(
        source=source,
        confidence=NEUTRAL_CONFIDENCE,
        recommendation=Recommendation.HOLD,
        risk_level=RiskLevel.MEDIUM,
        time_horizon=TimeHorizon.MEDIUM,
        price_target=None,
        stop_loss=None,
        reasoning=f"{source} {reason}: neutral opinion substituted.",
        neutral=True,
    )


def _enum_value(enum_cls: type, raw: Any, default: Any) -> Any:
    if raw is None:
        return default
    try:
        return enum_cls(str(raw).strip().upper().replace(" ", "_"))
    except ValueError:
        return default


def _optional_price(raw: Any) -> Optional[float]:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) and value > 0 else None


def parse_opinion_payload(source: str, payload: Union[AIOpinion, dict[str, Any], str]) -> AIOpinion:
    """
    Normalize a provider answer into an AIOpinion.

    Raises:
        MalformedDataError: no JSON object, missing required fields, or an
            unknown recommendation
    """
    if isinstance(payload, AIOpinion):
        return payload

    if isinstance(payload, str):
        match = _JSON_OBJECT.search(payload)
        if not match:
            raise MalformedDataError(
                "No JSON object in response",
                raw_data=payload[:200],
                expected_format="JSON object"
            )
        try:
            payload = orjson.loads(match.group(0))
        except orjson.JSONDecodeError as e:
            raise MalformedDataError(
                f"Invalid JSON in response: {e}",
                raw_data=match.group(0)[:200],
                expected_format="JSON object"
            ) from e

    if not isinstance(payload, dict):
        raise MalformedDataError("Opinion payload is not an object", raw_data=str(payload)[:200])

    missing = [name for name in _REQUIRED_FIELDS if name not in payload]
    if missing:
        raise MalformedDataError(
            f"Missing required fields: {', '.join(missing)}",
            raw_data=str(payload)[:200],
            expected_format=", ".join(_REQUIRED_FIELDS)
        )

    try:
        confidence = float(payload["confidence"])
    except (TypeError, ValueError) as e:
        raise MalformedDataError(f"Invalid confidence: {payload['confidence']}") from e
    if not math.isfinite(confidence):
        raise MalformedDataError(f"Non-finite confidence: {payload['confidence']}")

    recommendation = _enum_value(Recommendation, payload["recommendation"], None)
    if recommendation is None:
        raise MalformedDataError(f"Unknown recommendation: {payload['recommendation']}")

    return AIOpinion(
        source=source,
        confidence=max(0.0, min(100.0, confidence)),
        recommendation=recommendation,
        risk_level=_enum_value(RiskLevel, payload.get("risk_level"), RiskLevel.MEDIUM),
        time_horizon=_enum_value(TimeHorizon, payload.get("time_horizon"), TimeHorizon.MEDIUM),
        price_target=_optional_price(payload.get("price_target")),
        stop_loss=_optional_price(payload.get("stop_loss")),
        reasoning=str(payload.get("reasoning", "")),
    )


class OpinionCollector:
    """
    Queries all providers concurrently under a single deadline.

    Without an injected executor every ``collect`` call runs on its own pool
    with one thread per provider, so all calls start immediately and a
    provider that hangs past the deadline only holds its own thread. An
    injected executor must have a free worker for every provider of every
    concurrent ``collect`` call.
    """

    def __init__(self, executor: Optional[ThreadPoolExecutor] = None, timeout_seconds: float = 20.0):
        self.executor = executor
        self.timeout_seconds = timeout_seconds

    def collect(
        self,
        providers: list[AIOpinionProvider],
        symbol: str,
        context: dict[str, Any],
    ) -> list[AIOpinion]:
        """One opinion per provider, neutral where the provider failed."""
        if not providers:
            return []

        executor = self.executor or ThreadPoolExecutor(
            max_workers=len(providers), thread_name_prefix="ai-opinions"
        )
        try:
            futures = {
                provider.source_id: executor.submit(provider.analyze, symbol, context)
                for provider in providers
            }
            done, _ = wait(list(futures.values()), timeout=self.timeout_seconds)
        finally:
            if executor is not self.executor:
                executor.shutdown(wait=False, cancel_futures=True)

        opinions = []
        for source, future in futures.items():
            if future not in done:
                future.cancel()
                logger.warning(
                    "AI opinion timed out, using neutral opinion",
                    source=source, symbol=symbol, timeout=self.timeout_seconds
                )
                opinions.append(neutral_opinion(source, "timed out"))
                continue

            try:
                opinion = parse_opinion_payload(source, future.result())
            except MalformedDataError as e:
                logger.warning(
                    "AI opinion unparseable, using neutral opinion",
                    source=source, symbol=symbol, error=str(e)
                )
                opinions.append(neutral_opinion(source, "returned malformed data"))
                continue
            except Exception as e:
                logger.warning(
                    "AI opinion failed, using neutral opinion",
                    source=source, symbol=symbol, error=str(e)
                )
                opinions.append(neutral_opinion(source))
                continue

            opinions.append(opinion)

        return opinions
