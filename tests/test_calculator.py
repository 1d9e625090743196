# tests/test_calculator.py
import pytest

from cbt_prep.calculator import Calculator, format_number


def press_all(calc, keys):
    for key in keys:
        calc.press(key)
    return calc.display


def test_digits_replace_leading_zero():
    assert press_all(Calculator(), "007") == "7"


def test_simple_operations():
    assert press_all(Calculator(), "12+30=") == "42"
    assert press_all(Calculator(), "9-12=") == "-3"
    assert press_all(Calculator(), "6×7=") == "42"
    assert press_all(Calculator(), "7÷2=") == "3.5"


def test_operators_chain():
    calc = Calculator()
    press_all(calc, "2+3×")
    assert calc.display == "5"
    assert press_all(calc, "4=") == "20"


def test_divide_by_zero():
    calc = Calculator()
    assert press_all(calc, "5÷0=") == "Error"
    assert press_all(calc, "8") == "8"


def test_decimal_point_once():
    assert press_all(Calculator(), "1..5") == "1.5"
    calc = Calculator()
    press_all(calc, "3+")
    assert press_all(calc, ".5=") == "3.5"


def test_result_starts_new_entry():
    calc = Calculator()
    press_all(calc, "2+2=")
    assert press_all(calc, "9") == "9"


def test_clear_and_backspace():
    calc = Calculator()
    assert press_all(calc, "123⌫") == "12"
    assert press_all(calc, "⌫⌫") == "0"
    press_all(calc, "5+")
    assert press_all(calc, "C") == "0"
    assert calc.previous is None and calc.operation is None


def test_unknown_key():
    with pytest.raises(ValueError):
        Calculator().press("%")


def test_format_number():
    assert format_number(4.0) == "4"
    assert format_number(0.1 + 0.2) == "0.30000000000000004"
