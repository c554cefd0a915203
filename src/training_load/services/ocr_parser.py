"""
Parse fitness/fatigue/form readings out of recognized screenshot text.

Two strategies are tried. The spatial parser uses fragment positions: the
mobile PMC summary shows each value directly above its label (positions
are normalized with y growing upward). When positions are unavailable or
nothing can be attributed, the text parser works on the joined lines
using label proximity, inline patterns and a table layout.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple
import logging
import re

from ..models.calibration import PMCReading
from ..models.ocr import TextFragment


logger = logging.getLogger(__name__)


ARROW_CHARACTERS = ["⬇️", "⬆️", "↓", "↑", "⬇", "⬆", "▼", "▲", "↗", "↘", "↙", "↖", "→", "←"]

# Spatial layout tolerances (normalized coordinates)
LABEL_X_TOLERANCE = 0.08
FALLBACK_Y_TOLERANCE = 0.05
TSS_X_TOLERANCE = 0.25
TSS_Y_TOLERANCE = 0.15

# Plausible value ranges
PMC_VALUE_RANGE = (-50.0, 200.0)
MAX_DAILY_TSS = 500.0
MAX_WEEKLY_TSS = 2000.0

LINE_SEARCH_DISTANCE = 3

CTL_PATTERNS = [
    r"ctl[:\s]+([\d.]+)",
    r"fitness[:\s]+([\d.]+)",
    r"chronic[:\s]+([\d.]+)",
    r"([\d.]+)\s*ctl",
]
ATL_PATTERNS = [
    r"atl[:\s]+([\d.]+)",
    r"fatigue[:\s]+([\d.]+)",
    r"acute[:\s]+([\d.]+)",
    r"([\d.]+)\s*atl",
]
TSB_PATTERNS = [
    r"tsb[:\s]+([+-]?[\d.]+)",
    r"form[:\s]+([+-]?[\d.]+)",
    r"balance[:\s]+([+-]?[\d.]+)",
    r"([+-]?[\d.]+)\s*tsb",
]
DAILY_TSS_PATTERNS = [
    r"today[:\s]+([\d.]+)\s*tss",
    r"daily\s*tss[:\s]+([\d.]+)",
    r"tss[:\s]+([\d.]+)(?!.*week)",
    r"([\d.]+)\s*tss\s*today",
    r"today's\s*tss[:\s]+([\d.]+)",
]
WEEKLY_TSS_PATTERNS = [
    r"weekly\s*tss[:\s]+([\d.]+)",
    r"7[\s-]*day\s*tss[:\s]+([\d.]+)",
    r"week[:\s]+([\d.]+)\s*tss",
    r"tss[:\s]+([\d.]+).*week",
    r"([\d.]+)\s*tss\s*(?:this\s*)?week",
]
DATE_PATTERNS = [
    r"\d{1,2}/\d{1,2}/\d{2,4}",
    r"\d{4}-\d{2}-\d{2}",
    r"\w+ \d{1,2},? \d{4}",
]
DATE_FORMATS = ["%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d", "%B %d, %Y", "%B %d %Y"]

_INTEGER_RE = re.compile(r"^([+-]?\d+)$")
_FIRST_NUMBER_RE = re.compile(r"([+-]?\d+\.?\d*)")
_TABLE_NUMBER_RE = re.compile(r"^[+-]?\d+(?:\.\d+)?$")


def match_confidence(match_count: int) -> float:
    """Confidence for the number of load values attributed to a label."""
    if match_count >= 3:
        return 0.95
    if match_count == 2:
        return 0.75
    if match_count == 1:
        return 0.5
    return 0.2


def _strip_arrows(text: str) -> str:
    for arrow in ARROW_CHARACTERS:
        text = text.replace(arrow, "")
    return text


def _to_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


# ----------------------------------------------------------------------
# Spatial layout
# ----------------------------------------------------------------------


def _fragment_value(fragment: TextFragment) -> Optional[float]:
    """Integer value of a fragment holding only a (decorated) number."""
    cleaned = _strip_arrows(fragment.text).replace("•", "")
    # Dashes used as decoration go; a sign directly before digits stays
    cleaned = re.sub(r"-(?!\d)", "", cleaned).strip()
    match = _INTEGER_RE.match(cleaned)
    if match is None:
        return None
    value = float(match.group(1))
    low, high = PMC_VALUE_RANGE
    if low <= value <= high:
        return value
    return None


def _find_number_above(
    label: TextFragment,
    numbers: Sequence[Tuple[TextFragment, float]],
) -> Optional[float]:
    aligned = [
        (fragment, value) for fragment, value in numbers
        if abs(fragment.center_x - label.center_x) < LABEL_X_TOLERANCE
        and fragment.center_y > label.center_y
    ]
    if not aligned:
        return None
    _, value = min(aligned, key=lambda item: abs(item[0].center_y - label.center_y))
    return value


def _nearest_in_x(
    label: TextFragment,
    numbers: Sequence[Tuple[TextFragment, float]],
) -> float:
    _, value = min(numbers, key=lambda item: abs(item[0].center_x - label.center_x))
    return value


def parse_spatial_layout(fragments: Sequence[TextFragment]) -> Optional[PMCReading]:
    """
    Attribute numbers to Fitness/Fatigue/Form labels by position.

    Each label takes the nearest number directly above it. If fewer than
    three values are found this way, the numbers at or above the label row
    are assigned to the horizontally nearest unassigned labels. A number
    near a TSS label becomes the daily stress value.

    Args:
        fragments: Recognized text fragments with normalized positions

    Returns:
        PMCReading, or None when no load value could be attributed
    """
    fitness_labels = [f for f in fragments if "fitness" in f.text.lower() or f.text.lower() == "ctl"]
    form_labels = [f for f in fragments if "form" in f.text.lower() or f.text.lower() == "tsb"]
    fatigue_labels = [f for f in fragments if "fatigue" in f.text.lower() or f.text.lower() == "atl"]

    numbers: List[Tuple[TextFragment, float]] = []
    for fragment in fragments:
        value = _fragment_value(fragment)
        if value is not None:
            numbers.append((fragment, value))

    logger.debug(
        f"Spatial parse: {len(fitness_labels)} fitness, {len(form_labels)} form, "
        f"{len(fatigue_labels)} fatigue labels, {len(numbers)} numbers"
    )
    if not numbers:
        return None

    ctl: Optional[float] = None
    atl: Optional[float] = None
    tsb: Optional[float] = None
    match_count = 0

    for label in fitness_labels:
        value = _find_number_above(label, numbers)
        if value is not None:
            ctl = value
            match_count += 1
            break

    for label in form_labels:
        value = _find_number_above(label, numbers)
        if value is not None:
            tsb = value
            match_count += 1
            break

    for label in fatigue_labels:
        value = _find_number_above(label, numbers)
        if value is not None:
            atl = value
            match_count += 1
            break

    all_labels = fitness_labels + form_labels + fatigue_labels
    if match_count < 3 and len(all_labels) >= 2:
        label_y = sum(label.center_y for label in all_labels) / len(all_labels)
        row_numbers = sorted(
            [(f, v) for f, v in numbers if f.center_y >= label_y - FALLBACK_Y_TOLERANCE],
            key=lambda item: item[0].center_x,
        )
        logger.debug(f"Column fallback: {len(row_numbers)} numbers at or above label row")

        if len(row_numbers) >= 3:
            for label in fitness_labels:
                if ctl is not None:
                    break
                ctl = _nearest_in_x(label, row_numbers)
                match_count += 1

            for label in form_labels:
                if tsb is not None:
                    break
                value = _nearest_in_x(label, row_numbers)
                if value != ctl:
                    tsb = value
                    match_count += 1

            for label in fatigue_labels:
                if atl is not None:
                    break
                value = _nearest_in_x(label, row_numbers)
                if value != ctl and value != tsb:
                    atl = value
                    match_count += 1

    daily_tss: Optional[float] = None
    tss_labels = [f for f in fragments if "tss" in f.text.lower()]
    for label in tss_labels:
        for fragment, value in numbers:
            if (
                abs(fragment.center_x - label.center_x) < TSS_X_TOLERANCE
                and abs(fragment.center_y - label.center_y) < TSS_Y_TOLERANCE
                and value <= MAX_DAILY_TSS
            ):
                daily_tss = value
                break
        if daily_tss is not None:
            break

    if match_count == 0:
        logger.debug("Spatial parse found no load values")
        return None

    reading = PMCReading(
        ctl=ctl,
        atl=atl,
        tsb=tsb,
        daily_tss=daily_tss,
        confidence=match_confidence(match_count),
        raw_text="\n".join(f.text for f in fragments),
    )
    logger.info(f"Spatial parse: CTL={ctl}, ATL={atl}, TSB={tsb}, TSS={daily_tss}")
    return reading


# ----------------------------------------------------------------------
# Plain text
# ----------------------------------------------------------------------


def extract_number(line: str) -> Optional[float]:
    """First plausible number (0 < value < 500) on a line, ignoring arrows and 'TSS'."""
    cleaned = _strip_arrows(line)
    cleaned = re.sub("tss", "", cleaned, flags=re.IGNORECASE).strip()

    value = _to_float(cleaned) if cleaned else None
    if value is not None and 0 < value < MAX_DAILY_TSS:
        return value

    match = _FIRST_NUMBER_RE.search(cleaned)
    if match is not None:
        value = _to_float(match.group(1))
        if value is not None and 0 < value < MAX_DAILY_TSS:
            return value
    return None


def extract_value(text: str, patterns: Sequence[str]) -> Optional[float]:
    """Value captured by the first pattern matching the text (case-insensitive)."""
    for pattern in patterns:
        match = re.search(pattern, text, flags=re.IGNORECASE)
        if match is not None:
            return _to_float(match.group(1))
    return None


def extract_date(text: str) -> Optional[datetime]:
    """First date on a line in a recognized format."""
    for pattern in DATE_PATTERNS:
        match = re.search(pattern, text)
        if match is None:
            continue
        candidate = match.group(0)
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(candidate, fmt)
            except ValueError:
                continue
        return None
    return None


def _parse_mobile_format(lines: Sequence[str]) -> Tuple[Optional[float], Optional[float], Optional[float], int]:
    """Numbers with a Fitness/Fatigue/Form label within three lines."""
    ctl: Optional[float] = None
    atl: Optional[float] = None
    tsb: Optional[float] = None
    match_count = 0

    positions = [(i, extract_number(line)) for i, line in enumerate(lines)]
    for index, value in positions:
        if value is None:
            continue
        start = max(0, index - LINE_SEARCH_DISTANCE)
        end = min(len(lines) - 1, index + LINE_SEARCH_DISTANCE)
        for search_index in range(start, end + 1):
            if search_index == index:
                continue
            label = lines[search_index].lower()
            if ctl is None and ("fitness" in label or "ctl" in label or "chronic" in label):
                ctl = value
                match_count += 1
                break
            if atl is None and ("fatigue" in label or "atl" in label or "acute" in label):
                atl = value
                match_count += 1
                break
            if tsb is None and ("form" in label or "tsb" in label or "balance" in label):
                tsb = value
                match_count += 1
                break

    return ctl, atl, tsb, match_count


def _parse_mobile_tss(lines: Sequence[str]) -> Optional[float]:
    """Number within the three lines before a bare 'TSS' label."""
    for index, line in enumerate(lines):
        lower = line.lower().strip()
        if lower == "tss" or lower.startswith("tss ") or lower.endswith(" tss"):
            for search_index in range(index - 1, max(0, index - LINE_SEARCH_DISTANCE) - 1, -1):
                value = extract_number(lines[search_index])
                if value is not None and 0 < value <= MAX_DAILY_TSS:
                    return value
    return None


def _parse_tss_values(lines: Sequence[str]) -> Tuple[Optional[float], Optional[float]]:
    daily: Optional[float] = None
    weekly: Optional[float] = None

    for line in lines:
        lower = line.lower()
        if daily is None:
            for pattern in DAILY_TSS_PATTERNS:
                value = extract_value(lower, [pattern])
                if value is not None and 0 < value <= MAX_DAILY_TSS:
                    daily = value
                    break
        if weekly is None:
            for pattern in WEEKLY_TSS_PATTERNS:
                value = extract_value(lower, [pattern])
                if value is not None and 0 < value <= MAX_WEEKLY_TSS:
                    weekly = value
                    break

    if daily is None:
        daily = _parse_mobile_tss(lines)
    return daily, weekly


def parse_table_format(text: str) -> Optional[Tuple[Optional[float], Optional[float], Optional[float], float]]:
    """Header row naming CTL and ATL followed by a row of values in the same order."""
    lines = text.splitlines()
    header_index = next(
        (i for i, line in enumerate(lines) if "CTL" in line.upper() and "ATL" in line.upper()),
        None,
    )
    if header_index is None or header_index + 1 >= len(lines):
        return None

    numbers = [
        float(token.replace(",", ""))
        for token in lines[header_index + 1].split()
        if _TABLE_NUMBER_RE.match(token.replace(",", ""))
    ]
    if len(numbers) >= 3:
        return numbers[0], numbers[1], numbers[2], 0.8
    if len(numbers) == 2:
        return numbers[0], numbers[1], None, 0.6
    return None


def parse_text(raw_text: str) -> PMCReading:
    """
    Parse load values from recognized text without positions.

    Tries, in order: numbers next to Fitness/Fatigue/Form labels (the
    mobile layout read line by line), inline "CTL: 72" style patterns and
    finally a CTL/ATL/TSB table. Daily and weekly stress values are
    looked for independently.

    Args:
        raw_text: Recognized text, one fragment per line

    Returns:
        PMCReading; confidence is 0.2 when nothing was attributed
    """
    lines = [line.strip() for line in raw_text.splitlines()]
    ctl, atl, tsb, match_count = _parse_mobile_format(lines)
    daily_tss, weekly_tss = _parse_tss_values(lines)
    effective_date: Optional[datetime] = None

    if match_count == 0:
        for line in lines:
            if ctl is None:
                ctl = extract_value(line, CTL_PATTERNS)
                if ctl is not None:
                    match_count += 1
            if atl is None:
                atl = extract_value(line, ATL_PATTERNS)
                if atl is not None:
                    match_count += 1
            if tsb is None:
                tsb = extract_value(line, TSB_PATTERNS)
                if tsb is not None:
                    match_count += 1
            if effective_date is None:
                effective_date = extract_date(line)

    confidence = match_confidence(match_count)

    if ctl is None and atl is None and tsb is None:
        table = parse_table_format(raw_text)
        if table is not None:
            ctl, atl, tsb, table_confidence = table
            confidence = max(confidence, table_confidence)

    logger.info(
        f"Text parse: CTL={ctl}, ATL={atl}, TSB={tsb}, daily TSS={daily_tss}, "
        f"confidence={confidence}"
    )
    return PMCReading(
        ctl=ctl,
        atl=atl,
        tsb=tsb,
        daily_tss=daily_tss,
        weekly_tss=weekly_tss,
        effective_date=effective_date,
        confidence=confidence,
        raw_text=raw_text,
    )


def parse_fragments(fragments: Sequence[TextFragment]) -> PMCReading:
    """Spatial parse of the fragments, falling back to their joined text."""
    reading = parse_spatial_layout(fragments)
    if reading is not None:
        return reading
    return parse_text("\n".join(f.text for f in fragments))
