"""
Persisted sales inputs (price per kg of carcass, operating expenses).

Stored in a small local JSON state file under a fixed key, mirroring the
dashboard's browser storage entry. Absent or malformed values read as 0.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fieldops.config import LOCAL_STATE_FILE, PRICING_STORAGE_KEY
from fieldops.models import PricingConfig
from fieldops.normalizer import to_number

logger = logging.getLogger(__name__)


def _clamp(val: Any) -> float:
    return max(0.0, to_number(val))


def _read_state(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        state = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", path, e)
        return {}
    return state if isinstance(state, dict) else {}


def pricing_from_dict(data: Any) -> PricingConfig:
    if not isinstance(data, dict):
        return PricingConfig()
    return PricingConfig(
        unit_price=_clamp(data.get("pricePerKg")),
        expenses=_clamp(data.get("expenses")),
    )


def pricing_to_dict(pricing: PricingConfig) -> Dict[str, float]:
    return {"pricePerKg": pricing.unit_price, "expenses": pricing.expenses}


def load_pricing(path: Optional[Path] = None) -> PricingConfig:
    state = _read_state(Path(path or LOCAL_STATE_FILE))
    return pricing_from_dict(state.get(PRICING_STORAGE_KEY))


def save_pricing(pricing: PricingConfig, path: Optional[Path] = None) -> PricingConfig:
    """Clamp, persist and return the stored pricing inputs."""
    path = Path(path or LOCAL_STATE_FILE)
    stored = PricingConfig(unit_price=_clamp(pricing.unit_price), expenses=_clamp(pricing.expenses))
    state = _read_state(path)
    state[PRICING_STORAGE_KEY] = pricing_to_dict(stored)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state, indent=2), encoding="utf-8")
    return stored
