from enum import Enum

DRY_AT = 800
WET_AT = 500


class Condition(str, Enum):
    DRY = "Dry"
    WET = "Wet"
    GOOD = "Good"


def classify_moisture(value: float) -> Condition:
    """Map a raw soil moisture reading to a condition label.

    Both breakpoints are closed: 800 and above is Dry, 500 and below is Wet.
    They cannot both hold since DRY_AT > WET_AT, so 501..799 is Good.
    """
    if value >= DRY_AT:
        return Condition.DRY
    if value <= WET_AT:
        return Condition.WET
    return Condition.GOOD
