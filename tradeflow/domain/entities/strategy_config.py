"""
TradeFlow – Domain Entity: StrategyConfig
=========================================
Conjunto inmutable de parámetros que define UN pipeline de trading.

Una configuración determina por completo el comportamiento de su pipeline:
tipo de estrategia, umbrales de entrada, stops, límites de tenencia,
tamaño de posición, intervalo de velas y modo live/simulado.

IDENTIDAD:
    config_id = "<name>#<portfolio_id>"  → clave del espejo persistente
    junto con el símbolo.

PRESETS:
    Se incluyen las cinco configuraciones de referencia (mean reversion,
    trend following, long trend following, scalping, volatility breakout).
    `get_preset(name)` aplica overrides opcionales vía dataclasses.replace.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional

from tradeflow.domain.exceptions.domain_errors import ValidationError

DEFAULT_FEE_RATE = 0.004
DEFAULT_RISK_FRACTION = 0.04


@dataclass(frozen=True, slots=True)
class StrategyConfig:
    """Parámetros de estrategia (inmutables una vez cargados)."""

    name: str
    portfolio_id: int
    strategy_type: str

    # ─── Entrada ─────────────────────────────────────────────────────
    rsi_threshold: float
    macd_cross_needed: bool
    volume_spike_required: bool

    # ─── Stops ───────────────────────────────────────────────────────
    dynamic_stop_loss: bool
    stop_loss_pct: float
    take_profit_pct: float

    # ─── Velas / indicadores ─────────────────────────────────────────
    interval_minutes: int
    rsi_period: int
    long_ema_period: int
    short_ema_period: int
    signal_ema_period: int
    volume_spike_bar_count: int
    volume_spike_factor: float
    volatility_lookback: int
    volatility_threshold: float

    # ─── Riesgo ──────────────────────────────────────────────────────
    max_position_size: float
    max_positions: int
    max_volatility: float
    min_atr_percent: float

    # ─── Tenencia ────────────────────────────────────────────────────
    max_hold_time_minutes: float
    min_hold_time_minutes: float
    adjust_hold_time_with_volatility: bool
    minimum_required_candles: int

    max_atr_percent: Optional[float] = None
    trailing_stop_loss: Optional[float] = None
    trade_balance: float = 10_000.0
    live_trading: bool = False
    risk_fraction: float = DEFAULT_RISK_FRACTION
    fee_rate: float = DEFAULT_FEE_RATE

    def __post_init__(self) -> None:
        for attr in (
            "rsi_period",
            "long_ema_period",
            "short_ema_period",
            "signal_ema_period",
            "volume_spike_bar_count",
            "volatility_lookback",
            "minimum_required_candles",
            "max_positions",
            "interval_minutes",
        ):
            value = getattr(self, attr)
            if value <= 0:
                raise ValidationError(f"{attr} debe ser > 0", field=attr, value=value)

        if self.short_ema_period >= self.long_ema_period:
            raise ValidationError(
                "short_ema_period debe ser menor que long_ema_period",
                field="short_ema_period",
                value=self.short_ema_period,
            )
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ValidationError("stop_loss_pct y take_profit_pct deben ser > 0")
        if not 0 < self.max_position_size <= 1:
            raise ValidationError(
                "max_position_size debe estar en (0, 1]",
                field="max_position_size",
                value=self.max_position_size,
            )
        if self.min_hold_time_minutes > self.max_hold_time_minutes:
            raise ValidationError("min_hold_time_minutes > max_hold_time_minutes")
        if self.trailing_stop_loss is not None and self.trailing_stop_loss <= 0:
            raise ValidationError(
                "trailing_stop_loss debe ser > 0",
                field="trailing_stop_loss",
                value=self.trailing_stop_loss,
            )
        if self.max_atr_percent is not None and self.max_atr_percent <= self.min_atr_percent:
            raise ValidationError(
                "max_atr_percent debe superar a min_atr_percent",
                field="max_atr_percent",
                value=self.max_atr_percent,
            )
        if self.fee_rate < 0 or self.trade_balance < 0:
            raise ValidationError("fee_rate y trade_balance no pueden ser negativos")

    # ─── Derivados ───────────────────────────────────────────────────

    @property
    def config_id(self) -> str:
        return f"{self.name}#{self.portfolio_id}"

    @property
    def candle_capacity(self) -> int:
        """Capacidad del buffer de velas cerradas por símbolo."""
        return max(4 * self.long_ema_period, self.minimum_required_candles)

    @property
    def history_limit(self) -> int:
        """Velas históricas a pedir en el bootstrap (buffer + vela en curso)."""
        return self.candle_capacity + 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data["config_id"] = self.config_id
        return data


# ════════════════════════════════════════════════════════════════════════
#  PRESETS
# ════════════════════════════════════════════════════════════════════════

MEAN_REVERSION = StrategyConfig(
    name="meanReversion",
    portfolio_id=4,
    strategy_type="meanReversion",
    rsi_threshold=25,
    macd_cross_needed=True,
    volume_spike_required=True,
    dynamic_stop_loss=False,
    stop_loss_pct=3,
    take_profit_pct=6,
    interval_minutes=5,
    rsi_period=14,
    long_ema_period=26,
    short_ema_period=12,
    signal_ema_period=9,
    volume_spike_bar_count=20,
    volume_spike_factor=2.0,
    volatility_lookback=20,
    volatility_threshold=2.0,
    max_position_size=0.05,
    max_positions=5,
    max_volatility=3.0,
    min_atr_percent=0.8,
    max_hold_time_minutes=240,
    min_hold_time_minutes=5,
    adjust_hold_time_with_volatility=True,
    minimum_required_candles=26,
)

TREND_FOLLOWING = StrategyConfig(
    name="trendFollowing",
    portfolio_id=2,
    strategy_type="trendFollowing",
    rsi_threshold=45,
    macd_cross_needed=True,
    volume_spike_required=True,
    dynamic_stop_loss=True,
    stop_loss_pct=1.5,
    take_profit_pct=4.5,
    interval_minutes=15,
    rsi_period=14,
    long_ema_period=50,
    short_ema_period=20,
    signal_ema_period=9,
    volume_spike_bar_count=30,
    volume_spike_factor=1.3,
    volatility_lookback=50,
    volatility_threshold=1.2,
    max_position_size=0.06,
    max_positions=4,
    max_volatility=1.5,
    min_atr_percent=0.3,
    max_hold_time_minutes=1440,
    min_hold_time_minutes=30,
    adjust_hold_time_with_volatility=False,
    minimum_required_candles=50,
)

LONG_TREND_FOLLOWING = replace(
    TREND_FOLLOWING,
    name="longTrendFollowing",
    portfolio_id=3,
    stop_loss_pct=3.5,
    take_profit_pct=10.5,
    interval_minutes=30,
    long_ema_period=100,
    short_ema_period=30,
    max_volatility=2.5,
    minimum_required_candles=100,
)

SCALPING = StrategyConfig(
    name="scalping",
    portfolio_id=1,
    strategy_type="scalping",
    rsi_threshold=60,
    macd_cross_needed=True,
    volume_spike_required=True,
    dynamic_stop_loss=True,
    stop_loss_pct=1.0,
    take_profit_pct=2.0,
    interval_minutes=1,
    rsi_period=7,
    long_ema_period=13,
    short_ema_period=8,
    signal_ema_period=5,
    volume_spike_bar_count=10,
    volume_spike_factor=1.8,
    volatility_lookback=20,
    volatility_threshold=0.8,
    max_position_size=0.03,
    max_positions=10,
    max_volatility=1.5,
    min_atr_percent=0.1,
    max_atr_percent=1.0,
    max_hold_time_minutes=30,
    min_hold_time_minutes=1,
    adjust_hold_time_with_volatility=True,
    minimum_required_candles=13,
)

VOLATILITY_BREAKOUT = StrategyConfig(
    name="volatilityBreakout",
    portfolio_id=5,
    strategy_type="volatilityBreakout",
    rsi_threshold=50,
    macd_cross_needed=False,
    volume_spike_required=True,
    dynamic_stop_loss=True,
    stop_loss_pct=3.5,
    take_profit_pct=10.5,
    interval_minutes=15,
    rsi_period=14,
    long_ema_period=26,
    short_ema_period=12,
    signal_ema_period=9,
    volume_spike_bar_count=20,
    volume_spike_factor=2.5,
    volatility_lookback=30,
    volatility_threshold=2.5,
    max_position_size=0.05,
    max_positions=6,
    max_volatility=4.0,
    min_atr_percent=1.5,
    max_hold_time_minutes=360,
    min_hold_time_minutes=5,
    adjust_hold_time_with_volatility=True,
    minimum_required_candles=26,
)

PRESETS: Dict[str, StrategyConfig] = {
    cfg.name: cfg
    for cfg in (
        MEAN_REVERSION,
        TREND_FOLLOWING,
        LONG_TREND_FOLLOWING,
        SCALPING,
        VOLATILITY_BREAKOUT,
    )
}


def get_preset(name: str, **overrides) -> StrategyConfig:
    """Obtener un preset por nombre, aplicando overrides opcionales."""
    try:
        base = PRESETS[name]
    except KeyError:
        raise ValidationError(
            f"Preset de estrategia desconocido: {name}", field="name", value=name
        ) from None
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return replace(base, **overrides) if overrides else base
