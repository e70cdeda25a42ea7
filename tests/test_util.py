import math

from luxstory import util

def test_round_half_away():
    assert util.round_half_away(0.5) == 1
    assert util.round_half_away(1.5) == 2
    assert util.round_half_away(2.5) == 3
    assert util.round_half_away(-0.5) == -1
    assert util.round_half_away(-2.5) == -3
    assert util.round_half_away(0.49) == 0
    assert util.round_half_away(-0.49) == 0
    assert util.round_half_away(3) == 3

def test_clamp():
    assert util.clamp(11, 0, 10) == 10
    assert util.clamp(-1, 0, 10) == 0
    assert util.clamp(5, 0, 10) == 5

def test_stable_hash():
    assert util.stable_hash("a", "b", 1) == util.stable_hash("a", "b", 1)
    assert util.stable_hash("a", "b", 1) != util.stable_hash("a", "b", 2)
    # parts are separated, not just concatenated
    assert util.stable_hash("ab", "c") != util.stable_hash("a", "bc")

def test_is_finite_number():
    assert util.is_finite_number(1)
    assert util.is_finite_number(-2.5)
    assert not util.is_finite_number(math.nan)
    assert not util.is_finite_number(math.inf)
    assert not util.is_finite_number(True)
    assert not util.is_finite_number("3")
    assert not util.is_finite_number(None)

def test_fullname():
    assert util.fullname(util) == "module"
    assert util.fullname(ValueError("x")) == "ValueError"
