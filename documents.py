import re

from models import DocumentType

_NON_DIGITS = re.compile(r"\D")

_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def only_digits(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def _cpf_digit(digits: list[int], first_weight: int) -> int:
    total = sum(d * w for d, w in zip(digits, range(first_weight, 1, -1)))
    rest = (total * 10) % 11
    return 0 if rest == 10 else rest


def is_valid_cpf(value: str) -> bool:
    clean = only_digits(value)
    if len(clean) != 11 or clean == clean[0] * 11:
        return False
    digits = [int(c) for c in clean]
    if _cpf_digit(digits[:9], 10) != digits[9]:
        return False
    return _cpf_digit(digits[:10], 11) == digits[10]


def _cnpj_digit(digits: list[int], weights: tuple[int, ...]) -> int:
    rest = sum(d * w for d, w in zip(digits, weights)) % 11
    return 0 if rest < 2 else 11 - rest


def is_valid_cnpj(value: str) -> bool:
    clean = only_digits(value)
    if len(clean) != 14 or clean == clean[0] * 14:
        return False
    digits = [int(c) for c in clean]
    if _cnpj_digit(digits[:12], _CNPJ_WEIGHTS_1) != digits[12]:
        return False
    return _cnpj_digit(digits[:13], _CNPJ_WEIGHTS_2) == digits[13]


def normalize_document(document_type: DocumentType, number: str) -> str:
    """Return the digits of a CPF/CNPJ, raising ``ValueError`` when invalid."""
    if document_type == DocumentType.cpf:
        if not is_valid_cpf(number):
            raise ValueError("Invalid CPF")
    elif not is_valid_cnpj(number):
        raise ValueError("Invalid CNPJ")
    return only_digits(number)


def format_document(document_type: DocumentType, digits: str) -> str:
    if document_type == DocumentType.cpf and len(digits) == 11:
        return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
    if document_type == DocumentType.cnpj and len(digits) == 14:
        return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"
    return digits
