import re
from datetime import timedelta


class TimeParser:
    def __init__(self) -> None:
        self._units = {
            "ms": "milliseconds",
            "s": "seconds",
            "m": "minutes",
            "h": "hours",
            "d": "days",
            "w": "weeks",
        }

    def parse(self, time_amount: str) -> float:
        amounts: dict[str, float] = {}
        for match in re.finditer(
            r"(?P<val>\d+(\.\d+)?)(?P<unit>ms|[smhdw]?)",
            time_amount,
            flags=re.I,
        ):
            unit = self._units.get(match.group("unit").lower(), "seconds")
            amounts[unit] = amounts.get(unit, 0.0) + float(match.group("val"))

        if not amounts:
            raise ValueError(f"Err. - could not parse duration {time_amount!r}")

        return float(timedelta(**amounts).total_seconds())
