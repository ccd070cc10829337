"""Country/state lookups used to label region leaderboard buckets."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Protocol, Tuple

from ..core.config import get_settings

logger = logging.getLogger(__name__)

LABEL_SEPARATOR = " · "
_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")
_STATE_CODE = re.compile(r"^[A-Z0-9-]{1,10}$")


@dataclass(frozen=True)
class RegionContext:
    region_code: str
    country_code: str
    state_code: str
    country_name: Optional[str] = None
    state_name: Optional[str] = None
    region_label: Optional[str] = None


class RegionLookup(Protocol):
    """Anything able to decorate a region code; the builders only need this."""

    def get_region_context(self, region_code: Optional[str]) -> Optional[RegionContext]:
        ...


class RegionService:
    """Lookups backed by a ``states.json`` style dataset.

    The dataset is a list of ``{"iso2", "name", "states": [{"state_code", "name"}]}``
    objects. Countries without usable states are dropped. When the file is
    missing or unreadable every lookup returns ``None``.
    """

    def __init__(self, dataset_path: Optional[str] = None) -> None:
        self.dataset_path = dataset_path
        self._countries: Dict[str, Tuple[str, Dict[str, str]]] = {}
        if dataset_path:
            self._hydrate(Path(dataset_path))

    def is_ready(self) -> bool:
        return bool(self._countries)

    def _hydrate(self, path: Path) -> None:
        try:
            decoded = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("region dataset not found: %s", path)
            return
        except (OSError, ValueError) as exc:
            logger.warning("unable to load region dataset %s: %s", path, exc)
            return

        if not isinstance(decoded, list):
            logger.warning("region dataset %s is not a list", path)
            return

        for country in decoded:
            if not isinstance(country, dict):
                continue
            code = str(country.get("iso2") or "").strip().upper()
            name = str(country.get("name") or "").strip()
            if not code or not name:
                continue
            states: Dict[str, str] = {}
            for state in country.get("states") or []:
                if not isinstance(state, dict):
                    continue
                state_code = str(state.get("state_code") or "").strip().upper()
                state_name = str(state.get("name") or "").strip()
                if state_code and state_name:
                    states[state_code] = state_name
            if states:
                self._countries[code] = (name, states)

        if not self._countries:
            logger.warning("region dataset %s parsed but no usable countries were found", path)

    @staticmethod
    def parse_region_code(region_code: Optional[str]) -> Optional[Tuple[str, str]]:
        if not region_code or not region_code.strip():
            return None
        parts = region_code.strip().upper().split("-")
        if len(parts) != 2:
            return None
        country, state = parts
        if not _COUNTRY_CODE.match(country) or not _STATE_CODE.match(state):
            return None
        return country, state

    def get_country_name(self, country_code: str) -> Optional[str]:
        entry = self._countries.get(country_code.upper())
        return entry[0] if entry else None

    def get_state_name(self, country_code: str, state_code: str) -> Optional[str]:
        entry = self._countries.get(country_code.upper())
        if entry is None:
            return None
        return entry[1].get(state_code.upper())

    def get_region_label(self, region_code: Optional[str], separator: str = LABEL_SEPARATOR) -> Optional[str]:
        parsed = self.parse_region_code(region_code)
        if parsed is None:
            return None
        country = self.get_country_name(parsed[0])
        state = self.get_state_name(*parsed)
        if country and state:
            return f"{country}{separator}{state}"
        return country or state

    def get_region_context(self, region_code: Optional[str]) -> Optional[RegionContext]:
        parsed = self.parse_region_code(region_code)
        if parsed is None:
            return None
        country_code, state_code = parsed
        country_name = self.get_country_name(country_code)
        state_name = self.get_state_name(country_code, state_code)
        if country_name is None and state_name is None:
            return None
        return RegionContext(
            region_code=f"{country_code}-{state_code}",
            country_code=country_code,
            state_code=state_code,
            country_name=country_name,
            state_name=state_name,
            region_label=self.get_region_label(region_code),
        )


@lru_cache(maxsize=1)
def get_region_service() -> RegionService:
    """Return the process-wide lookup built from settings."""

    return RegionService(get_settings().region_data_path)
