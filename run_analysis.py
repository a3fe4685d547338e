"""
run_analysis.py - Run the Premier League position analysis end-to-end.

This script:
1. Loads and cleans the processed player table
2. Clusters per-position mean profiles (dendrogram)
3. Fits all model families on one stratified split
4. Writes the comparison table, confusion matrices, misclassified players
   and the dendrogram structure to the reports directory

Paths can be overridden through environment variables (or a .env file):
PLAYER_DATA_CSV, POSITION_ANALYSIS_CONFIG, REPORTS_DIR.
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler

import numpy as np
from dotenv import load_dotenv

from position_analysis import get_config, process_all_data, run_analysis
from position_analysis.exceptions import DegenerateClassError, PositionAnalysisError

load_dotenv()

project_root = os.path.dirname(os.path.abspath(__file__))


def setup_logging(log_file: str):
    """Configure structured logging with rotation."""
    if not os.path.isabs(log_file):
        log_file = os.path.join(project_root, log_file)
    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    # Create handlers
    file_handler = RotatingFileHandler(
        log_file, maxBytes=5*1024*1024, backupCount=3
    )
    console_handler = logging.StreamHandler()

    # Formatters
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    # Root logger
    logger = logging.getLogger()
    logger.setLevel(logging.INFO)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def convert_numpy_types(obj):
    """
    Recursively convert NumPy types to Python native types for JSON output.
    """
    if isinstance(obj, dict):
        return {str(k): convert_numpy_types(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_types(item) for item in obj]
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, (np.floating, float)):
        if np.isnan(obj) or np.isinf(obj):
            return None
        return float(obj)
    elif isinstance(obj, np.ndarray):
        return convert_numpy_types(obj.tolist())
    elif isinstance(obj, np.bool_):
        return bool(obj)
    return obj


def write_reports(results, processing_info, reports_dir):
    """Write every table the report renderer consumes."""
    os.makedirs(reports_dir, exist_ok=True)

    results.comparison().to_csv(os.path.join(reports_dir, 'model_comparison.csv'), index=False)
    results.per_class().to_csv(os.path.join(reports_dir, 'per_class_accuracy.csv'), index_label='Position')

    for name, outcome in results.outcomes.items():
        if not outcome.succeeded:
            continue
        outcome.result.confusion.to_csv(os.path.join(reports_dir, f'confusion_{name}.csv'))
        outcome.misclassified.to_csv(os.path.join(reports_dir, f'misclassified_{name}.csv'), index=False)
        if outcome.feature_importance is not None:
            outcome.feature_importance.to_csv(
                os.path.join(reports_dir, f'{name}_feature_importance.csv'), header=['Importance']
            )

    if results.clusterer is not None:
        dendrogram = results.clusterer.dendrogram_structure()
        dendrogram['groups'] = results.cluster_groups.to_dict()
        with open(os.path.join(reports_dir, 'dendrogram.json'), 'w') as f:
            json.dump(convert_numpy_types(dendrogram), f, indent=2)
        results.position_means.to_csv(os.path.join(reports_dir, 'position_means.csv'))

    summary = {
        'timestamp': datetime.now().isoformat(),
        'random_state': results.random_state,
        'processing': processing_info,
        'partition': {
            'train': results.partition.n_train,
            'test': results.partition.n_test,
            'train_fraction': results.partition.train_fraction,
            'class_counts': results.class_proportions[['train', 'test']].to_dict(orient='index'),
        },
        'models': {
            name: {
                'family': outcome.family,
                'metrics': outcome.result.summary() if outcome.succeeded else None,
                'details': outcome.details,
            }
            for name, outcome in results.outcomes.items()
        },
        'failures': results.failures(),
    }
    with open(os.path.join(reports_dir, 'run_summary.json'), 'w') as f:
        json.dump(convert_numpy_types(summary), f, indent=2)


def main():
    """Main analysis pipeline."""
    config = get_config()
    logger = setup_logging(config.get('output.log_file', 'logs/analysis.log'))

    csv_path = os.getenv('PLAYER_DATA_CSV', config.get('data.csv_path'))
    reports_dir = os.getenv('REPORTS_DIR', config.get('output.reports_dir', 'reports'))

    logger.info("=" * 80)
    logger.info("PREMIER LEAGUE POSITION ANALYSIS")
    logger.info("=" * 80)

    try:
        data = process_all_data(csv_path)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1
    except PositionAnalysisError as e:
        logger.error(f"Fatal schema error: {e}")
        return 1

    try:
        results = run_analysis(data['dataframe'], config)
    except DegenerateClassError as e:
        logger.error(f"Cannot build the shared train/test partition: {e}")
        return 1

    logger.info("=" * 80)
    logger.info("MODEL COMPARISON")
    logger.info("=" * 80)
    for line in results.comparison().to_string(index=False).splitlines():
        logger.info(line)

    write_reports(results, data['processing_info'], reports_dir)
    logger.info(f"Analysis complete! Results in: {reports_dir}/")

    return 0 if not results.failures() else 2


if __name__ == '__main__':
    sys.exit(main())
