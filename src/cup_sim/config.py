"""Static simulation configuration constants."""

POSITIONS: tuple[str, ...] = ("GK", "DF", "MD", "AT")

SQUAD_SIZE = 23
STARTING_ELEVEN_SIZE = 11
SQUAD_DISTRIBUTION: dict[str, int] = {"GK": 3, "DF": 8, "MD": 7, "AT": 5}
TOURNAMENT_SIZE = 8

RATING_MIN = 40
RATING_MAX = 99

# (natural low, natural high, off-position low, off-position high)
TIER_RATING_BANDS: dict[int, tuple[int, int, int, int]] = {
    1: (78, 97, 48, 72),
    2: (70, 90, 45, 68),
    3: (62, 82, 42, 64),
    4: (56, 76, 40, 60),
}
# Share of players whose off-position ceiling overlaps their natural band.
VERSATILE_PLAYER_CHANCE = 0.06

COUNTRY_TIERS: dict[str, int] = {
    "Morocco": 1,
    "Senegal": 1,
    "Nigeria": 1,
    "Egypt": 1,
    "Tunisia": 1,
    "Algeria": 1,
    "Ghana": 2,
    "Cameroon": 2,
    "Ivory Coast": 2,
    "Mali": 2,
    "Burkina Faso": 2,
    "Guinea": 2,
    "South Africa": 3,
    "Congo (DRC)": 3,
    "Uganda": 3,
    "Angola": 3,
    "Zambia": 3,
    "Kenya": 3,
    "Gabon": 3,
    "Cape Verde": 3,
}
DEFAULT_COUNTRY_TIER = 4

# Starters carry the team rating; the bench still counts a little.
STARTER_WEIGHT = 1.0
BENCH_WEIGHT = 0.15

# Expected goals per 90 minutes.
BASE_EXPECTED_GOALS = 1.35
RATING_GOAL_SENSITIVITY = 0.045
EXPECTED_GOALS_FLOOR = 0.35
EXPECTED_GOALS_CEILING = 3.6
EXTRA_TIME_SCALE = 0.26
MAX_GOALS_PER_PERIOD = 9

# Scorer attribution by natural position.
SCORER_POSITION_WEIGHTS: dict[str, float] = {"AT": 1.0, "MD": 0.42, "DF": 0.09, "GK": 0.0}
OWN_GOAL_CHANCE = 0.03
PENALTY_GOAL_CHANCE = 0.09
ASSIST_CHANCE = 0.62

# Shootout conversion.
PENALTY_BASE_CONVERSION = 0.75
PENALTY_RATING_SENSITIVITY = 0.004
PENALTY_CONVERSION_FLOOR = 0.55
PENALTY_CONVERSION_CEILING = 0.92
SHOOTOUT_ROUNDS = 5

# Timeline filler.
FILLER_EVENTS_PER_90 = 34
SUBSTITUTION_LIMIT = 5
SUBSTITUTION_WINDOWS: tuple[tuple[float, float], ...] = ((46.0, 89.0), (91.0, 118.0))
FILLER_EVENT_WEIGHTS: dict[str, float] = {
    "shot_on_target": 0.17,
    "shot_off_target": 0.17,
    "save": 0.10,
    "corner_kick": 0.12,
    "free_kick": 0.08,
    "foul": 0.16,
    "offside": 0.07,
    "yellow_card": 0.07,
    "red_card": 0.006,
    "substitution": 0.10,
}
