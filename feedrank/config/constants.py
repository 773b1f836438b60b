"""Constants for the ranking configuration module."""

# Log component names
COMPONENT_CONFIG = "config"
COMPONENT_CLI = "cli"

# Config store keys
KEY_CARD_WEIGHTS = "card_weights"
KEY_COLLECTION_WEIGHTS = "collection_weights"
KEY_CARD_HALF_LIFE_HOURS = "card_half_life_hours"
KEY_COLLECTION_HALF_LIFE_HOURS = "collection_half_life_hours"
KEY_PROMOTION_MULTIPLIER = "promotion_multiplier"
KEY_NORMALIZATION_WINDOW_DAYS = "normalization_window_days"
KEY_DEFAULT_CREATOR_QUALITY = "default_creator_quality"
KEY_ABUSE_PENALTY_FLOOR = "abuse_penalty_floor"

WEIGHT_KEYS: tuple[str, ...] = (KEY_CARD_WEIGHTS, KEY_COLLECTION_WEIGHTS)

SCALAR_KEYS: tuple[str, ...] = (
    KEY_CARD_HALF_LIFE_HOURS,
    KEY_COLLECTION_HALF_LIFE_HOURS,
    KEY_PROMOTION_MULTIPLIER,
    KEY_NORMALIZATION_WINDOW_DAYS,
    KEY_DEFAULT_CREATOR_QUALITY,
    KEY_ABUSE_PENALTY_FLOOR,
)

ALL_KEYS: tuple[str, ...] = WEIGHT_KEYS + SCALAR_KEYS

# Compiled-in defaults
DEFAULT_CARD_WEIGHTS: dict[str, float] = {
    "w_u": 1.0,  # upvotes
    "w_s": 2.0,  # saves
    "w_c": 2.5,  # comments
    "w_v": 1.5,  # visits
}
DEFAULT_COLLECTION_WEIGHTS: dict[str, float] = {
    "w_u": 0.8,
    "w_s": 3.0,
    "w_c": 2.0,
    "w_v": 0.5,
}
DEFAULT_CARD_HALF_LIFE_HOURS: float = 48.0
DEFAULT_COLLECTION_HALF_LIFE_HOURS: float = 168.0
DEFAULT_PROMOTION_MULTIPLIER: float = 0.5
DEFAULT_NORMALIZATION_WINDOW_DAYS: float = 7.0
DEFAULT_CREATOR_QUALITY: float = 30.0
DEFAULT_ABUSE_PENALTY_FLOOR: float = 0.01
