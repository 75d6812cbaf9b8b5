"""Constants for the ranker module."""

# Normalization divisors
LOG_SCALE_DIVISOR: float = 6.0  # log10(1e6) -> ~1M saturates
DRIFT_SATURATION: float = 20.0  # 20-point move saturates
SOCIAL_SATURATION: float = 100.0

# Liquidity sigmoid: 1 / (1 + exp(-k * (liquidity - midpoint)))
LIQUIDITY_SIGMOID_K: float = 0.0005
LIQUIDITY_SIGMOID_MIDPOINT: float = 10_000.0

# Time decay constants
URGENCY_DAYS_SCALE: float = 30.0
DECAY_HOURS_SCALE: float = 720.0

# fixed_v1 coefficients: volume, drift, urgency, liquidity, trend input
FIXED_V1_COEFFICIENTS: dict[str, float] = {
    "volume": 0.35,
    "drift": 0.25,
    "time": 0.20,
    "liquidity": 0.15,
    "trend_input": 0.05,
}

# weighted_v2 trend blend
TREND_DRIFT_WEIGHT: float = 0.5
TREND_SOCIAL_WEIGHT: float = 0.5

ALGORITHM_VERSIONS: dict[str, str] = {
    "fixed_v1": "1.0.0",
    "weighted_v2": "2.0.0",
}
