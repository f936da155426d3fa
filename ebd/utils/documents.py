"""
Brazilian taxpayer documents (CPF / CNPJ).

Validation uses the official check-digit algorithms. Inputs may carry any
punctuation; only digits are considered.
"""
import re
from typing import Optional

_NON_DIGITS = re.compile(r'\D')

CPF_LENGTH = 11
CNPJ_LENGTH = 14

_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def clean_document(value: Optional[str]) -> str:
    """Keep only the digits: '123.456.789-09' -> '12345678909'."""
    return _NON_DIGITS.sub('', value or '')


def _cpf_digit(digits: str, first_weight: int) -> int:
    total = sum(int(d) * w for d, w in zip(digits, range(first_weight, 1, -1)))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def validate_cpf(value: Optional[str]) -> bool:
    digits = clean_document(value)
    if len(digits) != CPF_LENGTH or digits == digits[0] * CPF_LENGTH:
        return False
    if _cpf_digit(digits[:9], 10) != int(digits[9]):
        return False
    return _cpf_digit(digits[:10], 11) == int(digits[10])


def _cnpj_digit(digits: str, weights) -> int:
    remainder = sum(int(d) * w for d, w in zip(digits, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def validate_cnpj(value: Optional[str]) -> bool:
    digits = clean_document(value)
    if len(digits) != CNPJ_LENGTH or digits == digits[0] * CNPJ_LENGTH:
        return False
    if _cnpj_digit(digits[:12], _CNPJ_WEIGHTS_1) != int(digits[12]):
        return False
    return _cnpj_digit(digits[:13], _CNPJ_WEIGHTS_2) == int(digits[13])


def validate_document(value: Optional[str]) -> bool:
    """CPF or CNPJ, decided by the number of digits."""
    digits = clean_document(value)
    if len(digits) == CPF_LENGTH:
        return validate_cpf(digits)
    if len(digits) == CNPJ_LENGTH:
        return validate_cnpj(digits)
    return False


def document_type(value: Optional[str]) -> Optional[str]:
    """'cpf', 'cnpj' or None."""
    digits = clean_document(value)
    return {CPF_LENGTH: 'cpf', CNPJ_LENGTH: 'cnpj'}.get(len(digits))


def format_document(value: Optional[str]) -> str:
    """
    Format with the usual masks; returns the input unchanged when it is
    neither 11 nor 14 digits long.

    Examples:
        format_document('52998224725') -> '529.982.247-25'
        format_document('11222333000181') -> '11.222.333/0001-81'
    """
    d = clean_document(value)
    if len(d) == CPF_LENGTH:
        return f'{d[:3]}.{d[3:6]}.{d[6:9]}-{d[9:]}'
    if len(d) == CNPJ_LENGTH:
        return f'{d[:2]}.{d[2:5]}.{d[5:8]}/{d[8:12]}-{d[12:]}'
    return value or ''
