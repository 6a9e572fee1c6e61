# backtest/validation.py
from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from backtest.config import BacktestRequest
from core.errors import ValidationError
from core.strategy.rules import RuleRegistry


def _format_errors(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc or '<request>'}: {err.get('msg')}")
    return "; ".join(parts)


def validate_request(
    raw: Union[BacktestRequest, Mapping[str, Any]],
    registry: Optional[RuleRegistry] = None,
) -> BacktestRequest:
    """
    Turn a raw request (dict from the API / YAML, or an already built
    BacktestRequest) into a validated BacktestRequest.

    Raises core.errors.ValidationError for a bad shape or range and, when a
    registry is given, for rule ids it does not know.
    """
    if isinstance(raw, BacktestRequest):
        request = raw
    elif isinstance(raw, Mapping):
        try:
            request = BacktestRequest.model_validate(dict(raw))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid backtest request: {_format_errors(exc)}", exc.errors()) from exc
    else:
        raise ValidationError(f"Backtest request must be a mapping, got {type(raw).__name__}")

    if registry is not None:
        unknown = registry.unknown(
            list(request.strategy.entry_rules) + list(request.strategy.exit_rules)
        )
        if unknown:
            raise ValidationError(
                f"Unknown rule id(s): {sorted(set(unknown))}. "
                f"Known rules: {registry.list_rules()}"
            )

    return request
