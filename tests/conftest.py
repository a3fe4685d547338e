
import pytest
import sys
import os

# Add project root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import pandas as pd

from position_analysis import get_config
from position_analysis.constants import CANONICAL_POSITIONS

# Mean profile per position: Gls/90, Ast/90, PrgC, PrgP, PrgR, Height_cm, CrdY
POSITION_PROFILES = {
    'GK':  (0.00, 0.00,  1.0,  2.0,  0.5, 191, 1.0),
    'CB':  (0.05, 0.03, 12.0, 70.0,  4.0, 188, 5.0),
    'LB':  (0.04, 0.12, 35.0, 55.0, 35.0, 178, 4.0),
    'RB':  (0.04, 0.13, 36.0, 52.0, 36.0, 179, 4.0),
    'CDM': (0.06, 0.06, 20.0, 95.0, 20.0, 183, 7.0),
    'CM':  (0.12, 0.12, 30.0, 85.0, 45.0, 180, 5.0),
    'CAM': (0.28, 0.25, 45.0, 60.0, 90.0, 176, 3.0),
    'LM':  (0.18, 0.20, 60.0, 40.0, 80.0, 175, 3.0),
    'RM':  (0.18, 0.21, 61.0, 41.0, 82.0, 175, 3.0),
    'LW':  (0.30, 0.22, 85.0, 30.0, 120.0, 174, 2.0),
    'RW':  (0.31, 0.23, 86.0, 31.0, 121.0, 174, 2.0),
    'ST':  (0.55, 0.12, 30.0, 20.0, 130.0, 185, 2.0),
}

SECONDARY_POSITIONS = {
    'GK': [],
    'CB': ['CDM'],
    'LB': ['LM', 'LWB'],
    'RB': ['RM', 'RWB'],
    'CDM': ['CM', 'CB'],
    'CM': ['CDM', 'CAM'],
    'CAM': ['CM', 'ST'],
    'LM': ['LW', 'LB'],
    'RM': ['RW', 'RB'],
    'LW': ['LM', 'ST'],
    'RW': ['RM', 'ST'],
    'ST': ['CF', 'LW'],
}

NATIONS = ['ENG', 'FRA', 'ESP', 'BRA', 'NED']


def make_players(n_per_position: int = 20, seed: int = 0) -> pd.DataFrame:
    """Synthetic cleaned player table with separable position profiles."""
    rng = np.random.default_rng(seed)
    rows = []

    for position in CANONICAL_POSITIONS:
        gls, ast, prgc, prgp, prgr, height, crdy = POSITION_PROFILES[position]
        secondary = SECONDARY_POSITIONS[position]

        for i in range(n_per_position):
            nineties = float(rng.uniform(5, 34))
            gls90 = max(0.0, rng.normal(gls, 0.04))
            ast90 = max(0.0, rng.normal(ast, 0.04))
            listed = [position] + secondary[:int(rng.integers(0, len(secondary) + 1))]
            rows.append({
                'Player': f'{position} Player {i}',
                'Nation': NATIONS[int(rng.integers(0, len(NATIONS)))],
                'Pos': ', '.join(listed),
                'Main_Pos': position,
                'Age': float(rng.integers(18, 36)),
                'Height_cm': float(rng.normal(height, 3)),
                'Weight_kg': float(rng.normal(height - 105, 4)),
                'Preferred_Foot': 'Left' if position.startswith('L') else 'Right',
                'Weak_Foot': float(rng.integers(1, 6)),
                'MP': float(np.ceil(nineties) + 2),
                'Starts': float(np.floor(nineties)),
                'Min': round(nineties * 90),
                '90s': nineties,
                'Gls': round(gls90 * nineties),
                'Ast': round(ast90 * nineties),
                'xG': gls90 * nineties,
                'xAG': ast90 * nineties,
                'PrgC': max(0.0, rng.normal(prgc, 5)),
                'PrgP': max(0.0, rng.normal(prgp, 8)),
                'PrgR': max(0.0, rng.normal(prgr, 10)),
                'Gls/90': gls90,
                'Ast/90': ast90,
                'xG90': max(0.0, gls90 + rng.normal(0, 0.02)),
                'xAG90': max(0.0, ast90 + rng.normal(0, 0.02)),
                'CrdY': float(max(0, round(rng.normal(crdy, 1.5)))),
                'CrdR': float(rng.integers(0, 2)),
                'PKatt': float(rng.integers(0, 4)) if position in ('ST', 'CAM') else 0.0,
                'PK': 0.0,
            })

    df = pd.DataFrame(rows)
    df['PK'] = np.floor(df['PKatt'] * 0.75)
    return df


@pytest.fixture(scope="session")
def player_df():
    """Cleaned 12-position table, 20 players per position."""
    return make_players()


@pytest.fixture
def raw_player_csv(tmp_path):
    """
    Raw CSV with minor position labels, a duplicate player and a missing main position.
    """
    df = make_players(n_per_position=8, seed=1)
    df = df.drop(columns=['Gls/90', 'Ast/90', 'xG90', 'xAG90'])

    df.loc[df['Main_Pos'] == 'ST', 'Main_Pos'] = ['CF', 'ST'] * 4
    rb_rows = df.index[df['Main_Pos'] == 'RB'][:3]
    df.loc[rb_rows, 'Main_Pos'] = 'RWB'
    lb_rows = df.index[df['Main_Pos'] == 'LB'][:3]
    df.loc[lb_rows, 'Main_Pos'] = 'lwb'

    duplicate = df.iloc[[0]].copy()
    missing = df.iloc[[1]].copy()
    missing['Player'] = 'No Position Player'
    missing['Main_Pos'] = np.nan
    df = pd.concat([df, duplicate, missing], ignore_index=True)

    path = tmp_path / "players.csv"
    df.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def fast_config(monkeypatch):
    """Global config with small ensembles so model tests stay quick."""
    config = get_config()
    settings = dict(config._config)
    settings['models'] = {
        **settings['models'],
        'random_forest': {'n_estimators': 60},
        'ranger': {'n_estimators': 60, 'max_features_grid': ['sqrt', 0.5]},
        'treebag': {'n_estimators': 10},
        'knn': {'k_grid': [5, 7, 9], 'cv_folds': 5},
    }
    monkeypatch.setattr(config, '_config', settings)
    return config
