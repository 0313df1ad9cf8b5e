"""Tests for content fingerprinting."""

from noteneo.fingerprint import document_surrogate, fingerprint, fingerprint_upload, is_image
from noteneo.storage.base import SERIAL_ALPHABET, generate_serial_code


def test_fingerprint_is_deterministic():
    data = b"\x89PNG\r\n\x1a\n handwritten notes"
    assert fingerprint(data) == fingerprint(bytes(data))


def test_fingerprint_known_value_is_stable_across_processes():
    # sha256("") is fixed; the digest must not depend on process state
    assert fingerprint(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert fingerprint("") == fingerprint(b"")


def test_text_and_bytes_agree_on_utf8():
    assert fingerprint("Ünïcode notes") == fingerprint("Ünïcode notes".encode("utf-8"))


def test_different_content_differs():
    assert fingerprint(b"page one") != fingerprint(b"page two")


def test_document_surrogate_uses_title_and_filename():
    assert document_surrogate(" Thermo ", "week3.pdf") == "Note Analysis. Title: Thermo. Filename: week3.pdf"


def test_fingerprint_upload_images_hash_bytes_documents_hash_surrogate():
    assert fingerprint_upload(b"abc", "image/png", "t", "f.png") == fingerprint(b"abc")
    doc_fp = fingerprint_upload(b"pdf bytes", "application/pdf", "Thermo", "week3.pdf")
    assert doc_fp == fingerprint(document_surrogate("Thermo", "week3.pdf"))
    # Document bytes are not inspected
    assert doc_fp == fingerprint_upload(b"other bytes", "application/pdf", "Thermo", "week3.pdf")


def test_is_image():
    assert is_image("image/jpeg")
    assert is_image("IMAGE/PNG")
    assert not is_image("application/pdf")
    assert not is_image(None)


def test_serial_code_format():
    for _ in range(200):
        code = generate_serial_code()
        assert code.startswith("NN-")
        assert len(code) == 9
        assert all(ch in SERIAL_ALPHABET for ch in code[3:])
    for confusable in "0O1I":
        assert confusable not in SERIAL_ALPHABET
