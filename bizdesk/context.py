from __future__ import annotations

from contextvars import ContextVar, Token

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
module_var: ContextVar[str | None] = ContextVar("module", default=None)


def set_correlation_id(value: str | None) -> Token[str | None]:
    return correlation_id_var.set(value)


def reset_correlation_id(token: Token[str | None]) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


def set_current_module(value: str | None) -> Token[str | None]:
    return module_var.set(value)


def reset_current_module(token: Token[str | None]) -> None:
    module_var.reset(token)


def get_current_module() -> str | None:
    return module_var.get()


def get_log_context() -> dict[str, str | None]:
    return {"correlation_id": get_correlation_id(), "module": get_current_module()}


def module_from_path(path: str) -> str | None:
    """Business module named by an ``/api/modules/{module}/...`` path."""
    parts = path.strip("/").split("/")
    if len(parts) >= 3 and parts[0] == "api" and parts[1] == "modules" and parts[2]:
        return parts[2]
    return None
