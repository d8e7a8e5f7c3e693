import hashlib
from umesao.services.versioning import content_hash, next_version, should_create_new_version


def test_content_hash_is_lowercase_sha256_hex():
    digest = content_hash(b"hello")
    assert digest == hashlib.sha256(b"hello").hexdigest()
    assert len(digest) == 64
    assert digest == digest.lower()


def test_content_hash_str_and_bytes_agree():
    assert content_hash("カード") == content_hash("カード".encode("utf-8"))


def test_identical_content_is_unchanged():
    old = content_hash(b"# Card\nSame text.")
    new_hash, changed = should_create_new_version(old, b"# Card\nSame text.")
    assert new_hash == old
    assert changed is False


def test_any_byte_difference_is_a_change():
    old = content_hash(b"# Card\nSame text.")
    new_hash, changed = should_create_new_version(old, b"# Card\nSame text. ")
    assert new_hash != old
    assert changed is True


def test_next_version():
    assert next_version(None) == 1
    assert next_version(1) == 2
    assert next_version(41) == 42
