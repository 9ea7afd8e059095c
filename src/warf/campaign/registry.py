import logging
import re
from pathlib import Path
from typing import Iterable

from rapidfuzz.distance import Jaro

from warf.campaign.errors import DiscoveryError, UnknownTargetError

logger = logging.getLogger(__name__)

TARGET_PATTERN = re.compile(r"pub fn fuzz_(\w+)\(")
SUGGESTION_THRESHOLD = 0.8
PREFIX_WEIGHT = 0.1
MAX_PREFIX = 4


def jaro_winkler(a: str, b: str) -> float:
    """Jaro similarity boosted by the length of the common prefix (up to 4 chars).

    Unlike `rapidfuzz.distance.JaroWinkler` the boost applies whatever the Jaro
    score, so "abcdxyz" and "abcdpqrs" score about 0.814.
    """
    jaro = Jaro.similarity(a, b)
    prefix = 0
    for x, y in zip(a[:MAX_PREFIX], b[:MAX_PREFIX]):
        if x != y:
            break
        prefix += 1
    return jaro + prefix * PREFIX_WEIGHT * (1 - jaro)


def did_you_mean(value: str, candidates: Iterable[str], threshold: float = SUGGESTION_THRESHOLD) -> str | None:
    """Return the candidate most similar to `value`, if it is similar enough.

    In ["foo", "bar"] the value "fop" yields "foo" while "zzz" yields None.
    When several candidates share the best score the first one seen wins.
    """
    best: tuple[float, str] | None = None
    for candidate in candidates:
        confidence = jaro_winkler(value, candidate)
        if confidence > threshold and (best is None or best[0] < confidence):
            best = (confidence, candidate)
    return best[1] if best is not None else None


class TargetRegistry:
    def __init__(self, source_path: Path, pattern: re.Pattern[str] = TARGET_PATTERN):
        self.source_path = Path(source_path)
        self.pattern = pattern

    def discover(self) -> list[str]:
        """Scan the target source and return every declared target name.

        The file is read on every call so the result always reflects what is on
        disk. Order follows the source and duplicates are kept.
        """
        try:
            source = self.source_path.read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise DiscoveryError(f"unable to read {self.source_path}") from e

        targets = [match.group(1) for match in self.pattern.finditer(source)]
        if not targets:
            raise DiscoveryError(f"no fuzz targets matching `{self.pattern.pattern}` in {self.source_path}")

        logger.debug(f"Discovered {len(targets)} targets in {self.source_path}")
        return targets

    def validate(self, target: str) -> list[str]:
        targets = self.discover()
        if target not in targets:
            raise UnknownTargetError(target, did_you_mean(target, targets))
        return targets
