"""
constants.py - Column names, position taxonomy and feature sets for the analysis.

Includes:
- Input schema (FBref-style headers joined with FIFA attributes)
- Canonical 12-label position taxonomy and the versioned relabeling table
- Clustering metrics and per-model-family feature sets
"""

# ============================================================================
# 1. INPUT SCHEMA
# ============================================================================

PLAYER_COLUMN = 'Player'
NATION_COLUMN = 'Nation'
POSITIONS_COLUMN = 'Pos'          # Eligible positions, comma-separated, primary first
MAIN_POSITION_COLUMN = 'Main_Pos'  # Classification target

# Raw counting stats and the per-90 columns derived from them
PER90_SOURCES = {
    'Gls/90': 'Gls',
    'Ast/90': 'Ast',
    'xG90': 'xG',
    'xAG90': 'xAG',
}

NUMERIC_COLUMNS = [
    'Age', 'Height_cm', 'Weight_kg', 'Weak_Foot',
    'MP', 'Starts', 'Min', '90s',
    'Gls', 'Ast', 'xG', 'xAG', 'PrgC', 'PrgP', 'PrgR',
    'Gls/90', 'Ast/90', 'xG90', 'xAG90',
    'CrdY', 'CrdR', 'PKatt', 'PK',
]

# Per-90 columns are optional on input: they are derived at load time when absent
REQUIRED_COLUMNS = [
    PLAYER_COLUMN, NATION_COLUMN, POSITIONS_COLUMN, MAIN_POSITION_COLUMN,
    'Age', 'Height_cm', 'Weight_kg', 'Preferred_Foot', 'Weak_Foot',
    'MP', 'Starts', 'Min', '90s',
    'Gls', 'Ast', 'xG', 'xAG', 'PrgC', 'PrgP', 'PrgR',
    'CrdY', 'CrdR', 'PKatt', 'PK',
]

# ============================================================================
# 2. POSITIONS
# ============================================================================

CANONICAL_POSITIONS = [
    'GK', 'CB', 'LB', 'RB', 'CDM', 'CM',
    'CAM', 'LM', 'RM', 'LW', 'RW', 'ST',
]

# Minor roles merged into their statistically equivalent canonical label.
# Bump the version whenever the table changes so reports can be traced back.
LABEL_MAP_VERSION = 1
POSITION_LABEL_MAP = {
    'CF': 'ST',
    'RWB': 'RB',
    'LWB': 'LB',
}

# Raw labels that overlap a canonical role; never clustered on their own
OVERLAPPING_POSITIONS = list(POSITION_LABEL_MAP.keys())

MAX_LISTED_POSITIONS = 3

# ============================================================================
# 3. FEATURE SETS
# ============================================================================

# Per-position mean profile used for hierarchical clustering
CLUSTER_METRICS = [
    'Gls/90', 'Ast/90', 'xG90', 'xAG90',
    'PrgC', 'PrgP', 'PrgR',
]

# The 14 hand-picked SVM features
SVM_FEATURES = [
    'Gls/90', 'Ast/90', 'xG90', 'xAG90',
    'PrgC', 'PrgP', 'PrgR',
    'Height_cm', 'Weight_kg', 'Weak_Foot',
    'CrdY', 'CrdR',
    'PKatt', 'PK',
]

# Dropped from the broad ensemble feature set: identifier and target-encoding columns
ENSEMBLE_EXCLUDE = [PLAYER_COLUMN, MAIN_POSITION_COLUMN, POSITIONS_COLUMN]

# ============================================================================
# 4. ANALYSIS DEFAULTS
# ============================================================================

RANDOM_STATE = 42
TRAIN_FRACTION = 0.7
DEFAULT_LINKAGE = 'complete'
SUPPORTED_LINKAGES = ['complete', 'average']
MIN_PLAYERS_PER_POSITION = 5
MIN_CLASS_EXAMPLES = 2
