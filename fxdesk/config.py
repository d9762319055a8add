# fxdesk/config.py
import copy
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    'market': {
        'initial_mid': 1.0850,
        'volatility': 0.00005,       # max move per price tick
        'drift': 0.0,
        'base_spread': 0.00008,      # legacy single spread (0.8 pips)
    },
    'impact': {
        'enabled': True,
        'half_life_ms': 1000,
        'max_impact_pips': 3.0,
        'size_scale_factor': 0.000005,
        'burst_window_ms': 5000,
        'burst_multiplier_max': 3.0,
        'max_banks': 10,
    },
    'spread': {
        'base_spread_min': 0.00005,
        'base_spread_max': 0.0002,
        'base_spread_mean': 0.0001,
        'spread_volatility': 0.00002,
        'mean_reversion_speed': 0.05,
        'tier_additions': {'1': 0.0, '5': 0.00005, '10': 0.0001, '50': 0.0002},
        'tier_minimums': {'1': 0.00005, '5': 0.0001, '10': 0.00015, '50': 0.00025},
    },
    'news': {
        'news_enabled': True,
        'releases_enabled': True,
        'news_chance_per_minute': 0.03,
        'min_news_between_minutes': 60,
        'release_delay_min': 60,
        'release_delay_max': 120,
        'history_limit': 50,
        'shock_delay_ms': 250,
        'volatility_decay_steps': 30,
        'volatility_decay_ms': 1000,
    },
    'voice_rfq': {
        'min_interval_seconds': 15,
        'max_interval_seconds': 45,
        'player_response_time_seconds': 30,
        'max_spread_from_market_pips': 30,
    },
    'electronic_rfq': {
        'min_interval_seconds': 8,
        'max_interval_seconds': 20,
        'max_active_rfqs': 5,
        'retention_seconds': 60,
    },
    'timing': {
        'price_ms': 100,
        'spread_ms': 500,
        'voice_rfq_ms': 500,
        'electronic_rfq_ms': 200,
        'twap_ms': 10000,
        'clock_ms': 1000,
    },
    'game': {
        'start_minutes': 7 * 60,
        'price_history_limit': 600,
        'chat_history_limit': 200,
    },
    'audit': {
        'trade_log': 'logs/trades.csv',
    },
    'logging': {
        'level': 'WARNING',
    },
}


def merge_config(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Recursively overlay `overrides` on a copy of `base`."""
    merged = copy.deepcopy(base)
    if not overrides:
        return merged
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def default_config() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(path: Optional[str] = "config.yaml") -> Dict[str, Any]:
    """
    Loads a YAML file on top of DEFAULT_CONFIG.
    A partial file is valid; unknown keys are carried through untouched.
    """
    if path is None:
        return default_config()
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(raw).__name__}")
    return merge_config(DEFAULT_CONFIG, raw)
