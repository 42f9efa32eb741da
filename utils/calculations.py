"""
Calculation utilities for Workout Tracker
Includes volume, change-vs-previous and personal record calculations
"""

from typing import Dict, Iterable, Optional, Tuple

NOT_APPLICABLE = 'N/A'


def to_float(value) -> float:
    """
    Parse a weight input, treating anything malformed as zero

    Args:
        value: Raw input (str, number or None)

    Returns:
        Parsed float, 0.0 for blank/non-numeric input
    """
    if value is None:
        return 0.0
    try:
        result = float(str(value).strip())
    except ValueError:
        return 0.0
    # NaN and infinities are not weights
    if result != result or result in (float('inf'), float('-inf')):
        return 0.0
    return result


def to_int(value) -> int:
    """
    Parse a reps input, treating anything malformed as zero

    Decimal input is truncated ('8.7' -> 8).
    """
    return int(to_float(value))


def parse_set_input(value, as_int: bool = False):
    """
    Parse a set input for saving

    Returns:
        The number, or None when the input is blank or not numeric
    """
    if value is None or str(value).strip() == '':
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if number != number:
        return None
    return int(number) if as_int else number


def calculate_volume(weight: float, reps: int) -> float:
    """
    Calculate training volume (weight × reps)

    Args:
        weight: Weight lifted
        reps: Number of repetitions

    Returns:
        Training volume
    """
    return weight * reps


def set_volume(set_row: Dict) -> float:
    """Volume of a stored set, derived from weight and reps when the backend left it empty"""
    volume = set_row.get('volume')
    if volume is not None:
        return float(volume)
    return calculate_volume(to_float(set_row.get('weight')), to_int(set_row.get('reps')))


def calculate_total_volume(sets: Iterable[Tuple]) -> float:
    """
    Calculate total volume for one exercise row

    Args:
        sets: (weight, reps) pairs; raw inputs are coerced, malformed ones count as zero

    Returns:
        Sum of weight × reps
    """
    return sum(calculate_volume(to_float(weight), to_int(reps)) for weight, reps in sets)


def calculate_session_volume(sets: Iterable[Dict]) -> float:
    """Total volume of stored set rows"""
    return sum(set_volume(s) for s in sets)


def format_volume(volume: float) -> str:
    """Volume for display, one decimal"""
    return f"{volume:.1f}"


def calculate_change(current_volume: float, previous_volume: float) -> Optional[Dict]:
    """
    Compare a row's volume with the previous performance

    Returns:
        Dictionary with 'percentage' and 'absolute' change, or None when
        either volume is zero (the change is not applicable)
    """
    if previous_volume <= 0 or current_volume <= 0:
        return None
    absolute = current_volume - previous_volume
    return {
        'percentage': absolute / previous_volume * 100,
        'absolute': absolute,
    }


def format_change(change: Optional[Dict]) -> Tuple[str, Optional[str]]:
    """
    Format a change for display

    Returns:
        (text, colour); colour is None for the N/A marker
    """
    if change is None:
        return NOT_APPLICABLE, None
    sign = '+' if change['absolute'] >= 0 else ''
    text = f"{sign}{change['percentage']:.1f}% ({sign}{change['absolute']:.1f} kg)"
    colour = 'green' if change['absolute'] >= 0 else 'red'
    return text, colour


def is_new_pr(weight: float, reps: int, best: Optional[Dict]) -> bool:
    """
    Check whether a set beats the personal record

    Args:
        weight: Weight of the new set
        reps: Reps of the new set
        best: Best stored set ({'weight', 'reps'}) or None if there is none

    Returns:
        True if there is no prior best, the weight is higher, or the
        weight ties and the reps are higher
    """
    if not best:
        return True
    best_weight = to_float(best.get('weight'))
    best_reps = to_int(best.get('reps'))
    return weight > best_weight or (weight == best_weight and reps > best_reps)
