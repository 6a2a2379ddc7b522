import pytest

from documents import format_document, is_valid_cnpj, is_valid_cpf, normalize_document
from models import DocumentType


def test_cpf_check_digits() -> None:
    assert is_valid_cpf("529.982.247-25")
    assert is_valid_cpf("52998224725")
    assert not is_valid_cpf("529.982.247-24")
    assert not is_valid_cpf("111.111.111-11")
    assert not is_valid_cpf("1234")


def test_cnpj_check_digits() -> None:
    assert is_valid_cnpj("11.222.333/0001-81")
    assert not is_valid_cnpj("11.222.333/0001-80")
    assert not is_valid_cnpj("00000000000000")


def test_normalize_returns_digits_or_raises() -> None:
    assert normalize_document(DocumentType.cpf, "529.982.247-25") == "52998224725"
    assert normalize_document(DocumentType.cnpj, "11.222.333/0001-81") == "11222333000181"
    with pytest.raises(ValueError):
        normalize_document(DocumentType.cnpj, "529.982.247-25")


def test_format_document() -> None:
    assert format_document(DocumentType.cpf, "52998224725") == "529.982.247-25"
    assert format_document(DocumentType.cnpj, "11222333000181") == "11.222.333/0001-81"
