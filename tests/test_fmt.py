import pytest

from xv6fs.fmt import kformat, uformat


@pytest.mark.parametrize("n", [0, 7, -42, 2**31 - 1, -(2**31)])
def test_decimal_matches_python(n):
    assert kformat("%d", n) == str(n)
    assert uformat("%d", n) == str(n)


def test_plain_d_truncates_to_int():
    assert kformat("%d", 2**31) == str(-(2**31))


def test_long_decimal_in_kernel_is_64_bit():
    assert kformat("%ld", 2**40) == str(2**40)
    assert kformat("%lld", -3) == "-3"


def test_long_decimal_in_user_is_32_bit():
    assert uformat("%ld", 2**32 + 5) == "5"


def test_hex_case_differs():
    assert kformat("%x", 255) == format(255, "x")
    assert uformat("%x", 255) == format(255, "X")


def test_unsigned_of_negative():
    assert kformat("%u", -1) == str(2**64 - 1)
    assert uformat("%u", -1) == str(2**32 - 1)


def test_pointer_is_sixteen_digits():
    assert kformat("%p", 0x1234) == "0x" + format(0x1234, "016x")
    assert uformat("%p", 0xABCDEF) == "0x" + format(0xABCDEF, "016X")


def test_null_string():
    assert kformat("%s", None) == "(null)"
    assert uformat("[%s]", None) == "[(null)]"


def test_percent_escape():
    assert kformat("100%%") == "100%"


def test_unknown_conversion_is_echoed():
    assert kformat("%c", 1) == "%c"
    assert uformat("%lq") == "%lq"


def test_trailing_percent_is_dropped():
    assert kformat("abc%") == "abc"
    assert uformat("abc%") == "abc"


def test_mixed_text():
    assert kformat("%d %s: unknown sys call %d\n", 3, "sh", 99) == "3 sh: unknown sys call 99\n"


def test_missing_argument():
    with pytest.raises(TypeError):
        kformat("%d %d", 1)