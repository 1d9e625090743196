"""Four-function calculator for use during timed exams."""
import math

OPERATORS = ("+", "-", "×", "÷")
ERROR = "Error"


def format_number(value: float) -> str:
    if math.isfinite(value) and float(value).is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def calculate(prev: float, current: float, op: str):
    if op == "+":
        return prev + current
    if op == "-":
        return prev - current
    if op == "×":
        return prev * current
    if op == "÷":
        return prev / current if current != 0 else None
    return current


class Calculator:
    """Button-press state machine; `display` is what the screen shows.

    Operators chain: pressing one while an operation is pending evaluates it first.
    """

    def __init__(self):
        self.clear()

    def clear(self) -> None:
        self.display = "0"
        self.previous = None
        self.operation = None
        self.waiting = False

    def _current(self) -> float:
        return 0.0 if self.display == ERROR else float(self.display)

    def _show(self, result) -> None:
        if result is None:
            self.display = ERROR
            self.previous = None
        else:
            self.display = format_number(result)

    def digit(self, d: str) -> None:
        if d not in "0123456789" or len(d) != 1:
            raise ValueError(f"not a digit: {d!r}")
        if self.waiting or self.display == ERROR:
            self.display = d
            self.waiting = False
        else:
            self.display = d if self.display == "0" else self.display + d

    def decimal(self) -> None:
        if self.waiting or self.display == ERROR:
            self.display = "0."
            self.waiting = False
        elif "." not in self.display:
            self.display += "."

    def operator(self, op: str) -> None:
        if op not in OPERATORS:
            raise ValueError(f"unknown operator {op!r}")
        current = self._current()
        if self.previous is not None and not self.waiting:
            result = calculate(self.previous, current, self.operation)
            self._show(result)
            self.previous = result
        else:
            self.previous = current
        self.operation = op
        self.waiting = True

    def equals(self) -> None:
        if self.operation and self.previous is not None:
            self._show(calculate(self.previous, self._current(), self.operation))
            self.previous = None
            self.operation = None
            self.waiting = True

    def backspace(self) -> None:
        if len(self.display) > 1 and self.display != ERROR:
            self.display = self.display[:-1]
            if self.display == "-":
                self.display = "0"
        else:
            self.display = "0"

    def press(self, key: str) -> str:
        """Apply one key (digit, '.', operator, '=', 'C' or '⌫') and return the display."""
        if key.isdigit() and len(key) == 1:
            self.digit(key)
        elif key == ".":
            self.decimal()
        elif key in OPERATORS:
            self.operator(key)
        elif key in ("=", "\n"):
            self.equals()
        elif key in ("C", "c"):
            self.clear()
        elif key in ("⌫", "<"):
            self.backspace()
        else:
            raise ValueError(f"unknown key {key!r}")
        return self.display
