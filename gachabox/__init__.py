"""gachabox package providing draw planning, execution, rate normalization and riagu math."""

from . import emit_rates, engine, models, point_calculator, pools, riagu_profit, store, utils  # noqa: F401

__all__ = ["emit_rates", "engine", "models", "point_calculator", "pools", "riagu_profit", "store", "utils"]
