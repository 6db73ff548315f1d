from __future__ import annotations

import sys
from pathlib import Path

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from backend.app.core.config import PredictorConfig, load_predictor_config


def _write_settings(tmp_path: Path, predictor: dict) -> Path:
    config_root = tmp_path / "cfg"
    config_root.mkdir()
    (config_root / "settings.yaml").write_text(yaml.safe_dump({"predictor": predictor}))
    return config_root


def test_predictor_block_is_loaded(tmp_path: Path) -> None:
    root = _write_settings(
        tmp_path,
        {
            "pricing_timeout_seconds": 12,
            "demand_timeout_seconds": 45,
            "mapping_timeout_seconds": 2.5,
            "max_concurrent_predictions": 8,
        },
    )

    config = load_predictor_config(str(root))

    assert config == PredictorConfig(12.0, 45.0, 2.5, 8)


def test_missing_file_uses_defaults(tmp_path: Path) -> None:
    config = load_predictor_config(str(tmp_path))
    assert config.pricing_timeout_seconds == 30.0
    assert config.demand_timeout_seconds == 60.0
    assert config.mapping_timeout_seconds == 5.0
    assert config.max_concurrent_predictions == 4


def test_partial_block_keeps_other_defaults(tmp_path: Path) -> None:
    root = _write_settings(tmp_path, {"demand_timeout_seconds": 90})
    config = load_predictor_config(str(root))
    assert config.demand_timeout_seconds == 90.0
    assert config.pricing_timeout_seconds == 30.0


def test_zero_limit_disables_limiter() -> None:
    assert PredictorConfig.from_mapping({"max_concurrent_predictions": 0}).max_concurrent_predictions == 0


def test_non_positive_timeout_is_rejected() -> None:
    with pytest.raises(ValueError):
        PredictorConfig.from_mapping({"pricing_timeout_seconds": 0})


def test_repository_settings_file_parses() -> None:
    config = load_predictor_config(str(ROOT / "configs"))
    assert config.pricing_timeout_seconds > 0
    assert config.demand_timeout_seconds > 0
